class DurableStorageError(Exception):
    """Base exception for durable asset storage errors"""
    pass

class StorageAttachError(DurableStorageError):
    """Raised when bytes cannot be attached to durable storage"""
    pass

class StorageRetrieveError(DurableStorageError):
    """Raised when attached bytes cannot be read back"""
    pass
