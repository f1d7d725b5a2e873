from django.conf import settings

from .base import BaseScanner, ScanResult
from .clamd import ClamdScanner
from .http import HttpScanner

# Centralized scanner registry, keyed by settings.UPLOAD_SCANNER['BACKEND']
SCANNER_REGISTRY = {
    'clamd': ClamdScanner,
    'http': HttpScanner,
}


def get_scanner(config=None):
    """
    Builds the configured scanner. `config` defaults to settings.UPLOAD_SCANNER.
    """
    config = config or settings.UPLOAD_SCANNER
    backend = config.get('BACKEND', 'clamd')
    scanner_class = SCANNER_REGISTRY.get(backend)
    if not scanner_class:
        raise ValueError(f"Unsupported scanner backend: {backend}")
    return scanner_class(config.get('OPTIONS', {}))


__all__ = [
    'SCANNER_REGISTRY',
    'BaseScanner',
    'ScanResult',
    'ClamdScanner',
    'HttpScanner',
    'get_scanner',
]
