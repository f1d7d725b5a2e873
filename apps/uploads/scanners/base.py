from abc import ABC, abstractmethod

from django.utils import timezone


class ScanResult:
    """
    The verdict of one scan: clean or infected, plus who scanned it.
    """

    def __init__(self, clean, scanner, virus_name=None, scan_duration=None, file_size=None):
        self.clean = bool(clean)
        self.scanner = scanner
        self.virus_name = virus_name
        self.scan_duration = scan_duration
        self.file_size = file_size
        self.scanned_at = timezone.now()

    @property
    def infected(self):
        return not self.clean

    def to_dict(self):
        return {
            'clean': self.clean,
            'infected': self.infected,
            'virus_name': self.virus_name,
            'scanner': self.scanner,
            'scan_duration': self.scan_duration,
            'file_size': self.file_size,
            'scanned_at': self.scanned_at.isoformat(),
        }

    def __repr__(self):
        verdict = 'CLEAN' if self.clean else f'INFECTED ({self.virus_name})'
        return f"<ScanResult {self.scanner}: {verdict}>"


class BaseScanner(ABC):
    """
    An abstract base class that all malware scanners must implement.
    The pipeline only ever calls scan() with a local file path.
    """

    name = 'base'

    def __init__(self, options=None):
        self.options = options or {}

    @abstractmethod
    def scan(self, file_path) -> ScanResult:
        """
        Scans a local file synchronously.

        Raises:
            ScanFileNotFoundError: the file does not exist.
            ScanTimeoutError: the scanner did not answer in time.
            ScannerUnavailableError: the scanner cannot be reached.
            ScanError: any other scanner failure.
        """
        pass

    def is_available(self) -> bool:
        """
        Cheap liveness check. Default implementation assumes the scanner is up.
        """
        return True
