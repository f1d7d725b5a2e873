from django.contrib import admin
from .models import Asset


@admin.register(Asset)
class AssetAdmin(admin.ModelAdmin):
    list_display = ['filename', 'content_type', 'file_size', 'storage_provider', 'created_at']
    list_filter = ['storage_provider', 'content_type', 'created_at']
    search_fields = ['filename']
    readonly_fields = ['id', 'file_size', 'content_type', 'storage_provider', 'storage_ref', 'upload_session', 'created_at']

    fieldsets = (
        ('Asset Information', {
            'fields': ('id', 'filename', 'file_size', 'content_type')
        }),
        ('Location', {
            'fields': ('workspace_id', 'container_id', 'user_id')
        }),
        ('Storage Details', {
            'fields': ('storage_provider', 'storage_ref')
        }),
        ('Provenance', {
            'fields': ('upload_session', 'metadata', 'created_at')
        }),
    )
