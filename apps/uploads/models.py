import uuid

from django.db import models
from django.db.models import Q

from .state_machine import ACTIVE_STATUSES, Status, TERMINAL_STATUSES

MB = 1024 * 1024
GB = 1024 * MB

# Stages whose events are folded into the pipeline metadata view
METADATA_STAGES = ('security', 'assembly', 'virus_scan', 'finalization')


class UploadSession(models.Model):
    """
    One logical file transfer: the client declares a file, sends it as
    numbered chunks, and the pipeline assembles, scans and finalizes it.
    Workspaces, containers and users live in other services and are only
    referenced by id.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    workspace_id = models.UUIDField(db_index=True)
    container_id = models.UUIDField(null=True, blank=True, db_index=True)
    user_id = models.UUIDField(db_index=True)

    filename = models.CharField(max_length=255)
    total_size = models.BigIntegerField()
    chunks_count = models.PositiveIntegerField()
    status = models.CharField(max_length=32, choices=Status.choices, default=Status.PENDING, db_index=True)
    metadata = models.JSONField(default=dict, blank=True) # Client-declared, e.g. {"file_type": "audio"}

    assembled_file_path = models.CharField(max_length=1024, blank=True, default='')
    virus_scan_queued_at = models.DateTimeField(null=True, blank=True)
    virus_scan_completed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True, db_index=True)

    class Meta:
        verbose_name = "Upload session"
        verbose_name_plural = "Upload sessions"
        ordering = ['-created_at']
        constraints = [
            # SQL NULLs never collide, so root-level uploads need their own constraint
            models.UniqueConstraint(
                fields=['workspace_id', 'container_id', 'filename'],
                condition=Q(status__in=ACTIVE_STATUSES, container_id__isnull=False),
                name='unique_active_upload_in_container',
            ),
            models.UniqueConstraint(
                fields=['workspace_id', 'filename'],
                condition=Q(status__in=ACTIVE_STATUSES, container_id__isnull=True),
                name='unique_active_upload_at_root',
            ),
            models.CheckConstraint(condition=Q(total_size__gt=0), name='upload_total_size_positive'),
            models.CheckConstraint(condition=Q(chunks_count__gt=0), name='upload_chunks_count_positive'),
        ]

    def __str__(self):
        return f"{self.filename} ({self.status})"

    @property
    def is_active(self):
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    @property
    def file_type(self):
        return (self.metadata or {}).get('file_type')

    @property
    def target_path(self):
        if self.container_id:
            return f"/{self.container_id}/{self.filename}"
        return f"/{self.filename}"

    def completed_chunk_numbers(self):
        return list(
            self.chunks.filter(status=Chunk.Status.COMPLETED)
            .order_by('chunk_number')
            .values_list('chunk_number', flat=True)
        )

    @property
    def completed_chunks_count(self):
        return self.chunks.filter(status=Chunk.Status.COMPLETED).count()

    @property
    def missing_chunks(self):
        completed = set(self.completed_chunk_numbers())
        return [number for number in range(1, self.chunks_count + 1) if number not in completed]

    @property
    def progress_percentage(self):
        if not self.chunks_count:
            return 0.0
        return round(self.completed_chunks_count / self.chunks_count * 100, 2)

    @property
    def uploaded_size(self):
        return self.chunks.filter(status=Chunk.Status.COMPLETED).aggregate(total=models.Sum('size'))['total'] or 0

    @property
    def remaining_size(self):
        return self.total_size - self.uploaded_size

    @property
    def recommended_chunk_size(self):
        if self.total_size <= 10 * MB:
            return 1 * MB
        if self.total_size < 1 * GB:
            return 5 * MB
        if self.total_size <= 5 * GB:
            return 10 * MB
        return 25 * MB

    def pipeline_metadata(self):
        """
        Folds the event log into the current view of stage metadata,
        e.g. {"virus_scan": {...}, "finalization": {...}}.
        Later events win per key; keys written by other stages are untouched.
        """
        view = {}
        for event in self.events.order_by('created_at', 'id'):
            if event.stage in METADATA_STAGES and event.data:
                view.setdefault(event.stage, {}).update(event.data)
        return view

    def last_error(self):
        """Returns the most recent error message recorded for this session, if any."""
        for event in self.events.order_by('-created_at', '-id'):
            error = (event.data or {}).get('error')
            if error:
                return error
        return None


class Chunk(models.Model):
    """
    One numbered byte range of a session's payload.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        COMPLETED = 'completed', 'Completed'
        FAILED = 'failed', 'Failed'

    upload_session = models.ForeignKey(UploadSession, related_name='chunks', on_delete=models.CASCADE)
    chunk_number = models.PositiveIntegerField()
    size = models.BigIntegerField()
    checksum = models.CharField(max_length=64, blank=True, default='') # MD5 hex digest
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    storage_key = models.CharField(max_length=512, blank=True, default='') # Key into the ChunkStore

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Chunk"
        verbose_name_plural = "Chunks"
        ordering = ['upload_session', 'chunk_number']
        constraints = [
            models.UniqueConstraint(fields=['upload_session', 'chunk_number'], name='unique_chunk_number_per_session'),
        ]

    def __str__(self):
        return f"Chunk {self.chunk_number} of {self.upload_session.filename}"


class UploadEvent(models.Model):
    """
    Append-only record of what happened to a session: one row per status
    transition or stage outcome. Never updated after creation.
    """
    upload_session = models.ForeignKey(UploadSession, related_name='events', on_delete=models.CASCADE)
    stage = models.CharField(max_length=32) # e.g. 'session', 'chunk', 'assembly', 'virus_scan', 'finalization', 'cleanup'
    from_status = models.CharField(max_length=32, blank=True, default='')
    to_status = models.CharField(max_length=32, blank=True, default='')
    data = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Upload event"
        verbose_name_plural = "Upload events"
        ordering = ['upload_session', 'created_at', 'id']

    def __str__(self):
        if self.to_status:
            return f"{self.stage}: {self.from_status} -> {self.to_status}"
        return f"{self.stage} event"
