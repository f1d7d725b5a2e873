from abc import ABC, abstractmethod

class BaseStorageProvider(ABC):
    """
    An abstract base class that all durable storage providers must implement.
    This is the only contract the upload pipeline has with permanent storage:
    attach bytes under a filename and content type, get back a reference that
    can later be used to reopen the bytes or build a download URL.
    """

    def __init__(self, config):
        """
        Initializes the provider with its configuration.
        """
        self.config = config

    @abstractmethod
    def attach(self, stream, filename: str, content_type: str) -> dict:
        """
        Stores the bytes read from `stream` durably.

        Args:
            stream: A binary file object positioned at the start of the content.
            filename: The user-facing filename of the asset (e.g. "track.wav").
            content_type: MIME type recorded alongside the bytes.
        Returns:
            Dict containing the provider-specific reference needed to retrieve
            the bytes later (e.g., {"name": "assets/ab12/track.wav"}).
        """
        pass

    @abstractmethod
    def open(self, ref: dict):
        """
        Opens previously attached bytes for reading, given their reference.
        """
        pass

    @abstractmethod
    def exists(self, ref: dict) -> bool:
        pass

    @abstractmethod
    def delete(self, ref: dict):
        """
        Removes previously attached bytes. Deleting something already gone is not an error.
        """
        pass

    def url(self, ref: dict):
        """
        Returns a URL the bytes can be downloaded from, or None when the
        provider cannot produce one.

        This method is optional. Default implementation returns None.
        """
        return None
