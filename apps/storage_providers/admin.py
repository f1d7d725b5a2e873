from django.conf import settings
from django.contrib import admin

from .models import StorageProvider


@admin.register(StorageProvider)
class StorageProviderAdmin(admin.ModelAdmin):
    list_display = ['name', 'platform', 'is_durable_target', 'asset_count']
    list_filter = ['platform']
    search_fields = ['name']

    fieldsets = (
        ('Provider Information', {
            'fields': ('name', 'platform')
        }),
        ('Configuration', {
            'fields': ('config',),
            'description': 'JSON configuration, e.g. {"location": "/srv/assets", "base_url": "/media/"} for Filesystem'
        }),
    )

    @admin.display(boolean=True, description='Receives new assets')
    def is_durable_target(self, obj):
        return obj.name == settings.UPLOAD_DURABLE_STORAGE_PROVIDER

    @admin.display(description='Assets')
    def asset_count(self, obj):
        return obj.assets.count()

    def has_delete_permission(self, request, obj=None):
        # Assets reference their provider with PROTECT
        if obj is not None and obj.assets.exists():
            return False
        return super().has_delete_permission(request, obj)
