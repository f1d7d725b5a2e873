from django.db import models

from .providers import PLATFORM_CHOICES


class StorageProvider(models.Model):
    """
    Represents a durable storage backend for finalized assets (local disk,
    whatever Django's default storage points at, ...).
    """
    name = models.CharField(max_length=100, unique=True)
    platform = models.CharField(max_length=100, choices=PLATFORM_CHOICES)  # e.g. 'Filesystem', 'DefaultStorage'
    # Store any necessary configuration for the provider as a JSON field
    config = models.JSONField(default=dict, blank=True)

    class Meta:
        verbose_name = "Storage provider"
        verbose_name_plural = "Storage providers"
        ordering = ["name"]

    def __str__(self):
        return self.name
