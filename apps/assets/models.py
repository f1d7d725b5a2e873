import uuid

from django.db import models

from .content_types import file_extension, resolve_file_type


class Asset(models.Model):
    """
    A finalized, permanent file. Created exactly once per successfully
    finalized upload session; only its metadata may change afterwards.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    workspace_id = models.UUIDField(db_index=True)
    container_id = models.UUIDField(null=True, blank=True, db_index=True)
    user_id = models.UUIDField(db_index=True)

    filename = models.CharField(max_length=255)
    file_size = models.BigIntegerField()
    content_type = models.CharField(max_length=255)
    metadata = models.JSONField(default=dict, blank=True) # Provenance: session id, chunk count, scan result, ...

    storage_provider = models.ForeignKey('storage_providers.StorageProvider', related_name='assets', on_delete=models.PROTECT)
    storage_ref = models.JSONField(default=dict) # Reference returned by the provider's attach()

    # One-to-one: a session can never be promoted twice
    upload_session = models.OneToOneField(
        'uploads.UploadSession',
        related_name='asset',
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Asset"
        verbose_name_plural = "Assets"
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.filename} ({self.humanized_size})"

    @property
    def file_extension(self):
        return file_extension(self.filename)

    @property
    def file_type(self):
        return resolve_file_type(self.filename)

    @property
    def full_path(self):
        if self.container_id:
            return f"/{self.container_id}/{self.filename}"
        return f"/{self.filename}"

    @property
    def humanized_size(self):
        if self.file_size is None:
            return 'Unknown'

        units = ['B', 'KB', 'MB', 'GB', 'TB']
        size = float(self.file_size)
        unit_index = 0
        while size >= 1024 and unit_index < len(units) - 1:
            size /= 1024
            unit_index += 1
        return f"{round(size, 1)} {units[unit_index]}"

    def annotate(self, **metadata):
        """
        Merges keys into the metadata map. This is the only mutation allowed
        on a finalized asset.
        """
        self.metadata = {**(self.metadata or {}), **metadata}
        self.save(update_fields=['metadata'])
