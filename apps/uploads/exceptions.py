class UploadError(Exception):
    """Base exception for the upload pipeline"""
    pass

class UploadValidationError(UploadError):
    """Raised when a session or chunk request is rejected before any state changes"""
    pass

class DuplicateUploadError(UploadValidationError):
    """Raised when an active session already claims the filename in that location"""
    pass

class BlockedFileError(UploadValidationError):
    """Raised when the file type is never accepted, whatever its content"""
    pass

class InvalidTransition(UploadError):
    """Raised when a status change is illegal or lost the compare-and-swap race"""

    def __init__(self, message, current_status=None, target_status=None):
        super().__init__(message)
        self.current_status = current_status
        self.target_status = target_status


class StorageError(UploadError):
    """Raised when the chunk store fails to read or write"""
    pass

class ChunkNotFoundError(StorageError):
    """Raised when a chunk storage key points to nothing"""
    pass


class AssemblyError(UploadError):
    """Raised when chunks cannot be assembled; terminal for the session"""
    pass

class AssemblyConflict(AssemblyError):
    """Raised by an assembly attempt that lost the race to a concurrent attempt"""
    pass


class ScanError(UploadError):
    """Base exception for scanner failures"""
    pass

class ScanFileNotFoundError(ScanError):
    """Raised when the file handed to the scanner does not exist"""
    pass

class ScanTimeoutError(ScanError):
    """Raised when the scanner does not answer in time"""
    pass

class ScannerUnavailableError(ScanError):
    """Raised when the scanner cannot be reached at all"""
    pass


class FinalizationError(UploadError):
    """Raised when an assembled file cannot be promoted to an Asset"""
    pass
