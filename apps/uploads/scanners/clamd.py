import logging
import os
import re
import socket
import struct
import time

from apps.uploads.exceptions import ScanError, ScanFileNotFoundError, ScanTimeoutError, ScannerUnavailableError
from .base import BaseScanner, ScanResult

logger = logging.getLogger(__name__)

# clamd answers "stream: Eicar-Test-Signature FOUND"
FOUND_PATTERN = re.compile(r':\s*(.+?)\s+FOUND$')


class ClamdScanner(BaseScanner):
    """
    Talks to a clamd daemon over TCP using the INSTREAM command, so the
    daemon does not need access to our filesystem.

    Options: host, port, timeout (seconds), chunk_size (bytes per INSTREAM frame).
    """

    name = 'clamav'

    def __init__(self, options=None):
        super().__init__(options)
        self.host = self.options.get('host', 'localhost')
        self.port = int(self.options.get('port', 3310))
        self.timeout = float(self.options.get('timeout', 30))
        self.chunk_size = int(self.options.get('chunk_size', 64 * 1024))

    def is_available(self):
        try:
            with self._connect() as connection:
                connection.sendall(b'zPING\0')
                return self._read_reply(connection) == 'PONG'
        except (ScanError, OSError) as e:
            logger.warning(f"clamd not reachable at {self.host}:{self.port} - {e}")
            return False

    def scan(self, file_path):
        if not file_path or not os.path.isfile(file_path):
            raise ScanFileNotFoundError(f"File not found: {file_path}")

        file_size = os.path.getsize(file_path)
        start = time.monotonic()
        logger.debug(f"Streaming {file_path} ({file_size} bytes) to clamd at {self.host}:{self.port}")

        try:
            with self._connect() as connection, open(file_path, 'rb') as source:
                connection.sendall(b'zINSTREAM\0')
                while True:
                    data = source.read(self.chunk_size)
                    if not data:
                        break
                    connection.sendall(struct.pack('!L', len(data)) + data)
                connection.sendall(struct.pack('!L', 0))
                reply = self._read_reply(connection)
        except socket.timeout as e:
            raise ScanTimeoutError(f"Virus scan timed out after {self.timeout} seconds") from e
        except FileNotFoundError as e:
            raise ScanFileNotFoundError(f"File not found: {file_path}") from e
        except OSError as e:
            raise ScanError(f"clamd connection failed during scan: {e}") from e

        duration = round(time.monotonic() - start, 3)
        logger.debug(f"clamd reply for {file_path}: {reply}")

        if reply.endswith('OK'):
            return ScanResult(clean=True, scanner=self.name, scan_duration=duration, file_size=file_size)

        match = FOUND_PATTERN.search(reply)
        if match:
            return ScanResult(
                clean=False,
                scanner=self.name,
                virus_name=match.group(1),
                scan_duration=duration,
                file_size=file_size,
            )

        raise ScanError(f"clamd scan error: {reply}")

    def _connect(self):
        try:
            return socket.create_connection((self.host, self.port), timeout=self.timeout)
        except socket.timeout as e:
            raise ScanTimeoutError(f"Timed out connecting to clamd at {self.host}:{self.port}") from e
        except OSError as e:
            raise ScannerUnavailableError(f"clamd not reachable at {self.host}:{self.port}: {e}") from e

    @staticmethod
    def _read_reply(connection):
        data = b''
        while not data.endswith(b'\0'):
            received = connection.recv(4096)
            if not received:
                break
            data += received
        return data.rstrip(b'\0').decode('utf-8', errors='replace').strip()
