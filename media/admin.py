from django.contrib import admin

from media.models import MediaRecord, Rendition


class RenditionInline(admin.TabularInline):
    model = Rendition
    extra = 0
    can_delete = False
    fields = ('name', 'purpose', 'storage_key', 'width', 'height', 'byte_size', 'is_primary')
    readonly_fields = fields


@admin.register(MediaRecord)
class MediaRecordAdmin(admin.ModelAdmin):
    list_display = ('id', 'owner_id', 'kind', 'status', 'original_filename', 'created_at')
    list_filter = ('kind', 'status')
    search_fields = ('id', 'owner_id', 'original_filename', 'original_key')
    readonly_fields = (
        'id', 'owner_id', 'kind', 'declared_content_type', 'original_filename', 'original_key',
        'status', 'error_reason', 'processing_started_at', 'processing_attempts', 'processing_task_id',
        'created_at', 'updated_at',
    )
    inlines = [RenditionInline]
