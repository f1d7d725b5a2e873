import logging
import os
import time

import httpx

from apps.uploads.exceptions import ScanError, ScanFileNotFoundError, ScanTimeoutError, ScannerUnavailableError
from .base import BaseScanner, ScanResult

logger = logging.getLogger(__name__)


class HttpScanner(BaseScanner):
    """
    Submits files to a scanning service over HTTP.

    The service receives a multipart POST with a single 'file' field and
    answers JSON like {"clean": false, "virus_name": "Eicar-Test-Signature"}.

    Options: url (required), health_url, timeout (seconds), scanner (name reported in results).
    """

    def __init__(self, options=None, transport=None):
        super().__init__(options)
        self.url = self.options.get('url')
        if not self.url:
            raise ValueError("HttpScanner requires a 'url' option")
        self.health_url = self.options.get('health_url')
        self.timeout = float(self.options.get('timeout', 30))
        self.name = self.options.get('scanner', 'http')
        self.transport = transport

    def _client(self):
        return httpx.Client(timeout=self.timeout, transport=self.transport)

    def is_available(self):
        if not self.health_url:
            return True
        try:
            with self._client() as client:
                response = client.get(self.health_url)
                return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"Scanner health check failed at {self.health_url}: {e}")
            return False

    def scan(self, file_path):
        if not file_path or not os.path.isfile(file_path):
            raise ScanFileNotFoundError(f"File not found: {file_path}")

        file_size = os.path.getsize(file_path)
        start = time.monotonic()
        logger.debug(f"Submitting {file_path} ({file_size} bytes) to {self.url}")

        try:
            with self._client() as client, open(file_path, 'rb') as source:
                files = {
                    'file': (os.path.basename(file_path), source, 'application/octet-stream')
                }
                response = client.post(self.url, files=files)
        except httpx.TimeoutException as e:
            raise ScanTimeoutError(f"Virus scan timed out after {self.timeout} seconds") from e
        except httpx.TransportError as e:
            raise ScannerUnavailableError(f"Scanner not reachable at {self.url}: {e}") from e

        if response.status_code in (502, 503, 504):
            raise ScannerUnavailableError(f"Scanner unavailable (status {response.status_code})")
        if response.status_code != 200:
            raise ScanError(f"Scanner error (status {response.status_code}): {response.text}")

        try:
            verdict = response.json()
        except ValueError as e:
            raise ScanError(f"Scanner returned invalid JSON: {response.text}") from e
        if 'clean' not in verdict:
            raise ScanError(f"Scanner response has no verdict: {verdict}")

        duration = round(time.monotonic() - start, 3)
        return ScanResult(
            clean=verdict['clean'],
            scanner=verdict.get('scanner', self.name),
            virus_name=verdict.get('virus_name'),
            scan_duration=duration,
            file_size=file_size,
        )
