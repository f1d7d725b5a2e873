from django.contrib import admin
from .models import Chunk, UploadEvent, UploadSession


class ChunkInline(admin.TabularInline):
    model = Chunk
    extra = 0
    readonly_fields = ['chunk_number', 'size', 'checksum', 'status', 'storage_key', 'updated_at']
    can_delete = False


class UploadEventInline(admin.TabularInline):
    model = UploadEvent
    extra = 0
    readonly_fields = ['stage', 'from_status', 'to_status', 'data', 'created_at']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(UploadSession)
class UploadSessionAdmin(admin.ModelAdmin):
    list_display = ['filename', 'status', 'workspace_id', 'container_id', 'total_size', 'progress', 'updated_at']
    list_filter = ['status', 'created_at']
    search_fields = ['filename', 'id', 'workspace_id', 'user_id']
    readonly_fields = [
        'id', 'created_at', 'updated_at', 'assembled_file_path',
        'virus_scan_queued_at', 'virus_scan_completed_at', 'completed_at',
    ]
    inlines = [ChunkInline, UploadEventInline]

    fieldsets = (
        ('Upload', {
            'fields': ('id', 'filename', 'status', 'total_size', 'chunks_count', 'metadata')
        }),
        ('Location', {
            'fields': ('workspace_id', 'container_id', 'user_id')
        }),
        ('Pipeline', {
            'fields': ('assembled_file_path', 'virus_scan_queued_at', 'virus_scan_completed_at', 'completed_at')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def progress(self, obj):
        return f"{obj.progress_percentage}%"
    progress.short_description = 'Progress'


@admin.register(Chunk)
class ChunkAdmin(admin.ModelAdmin):
    list_display = ['upload_session', 'chunk_number', 'size', 'status', 'updated_at']
    list_filter = ['status']
    search_fields = ['upload_session__filename']
