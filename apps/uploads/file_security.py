import logging
import re

logger = logging.getLogger(__name__)

RISK_LOW = 'low'
RISK_MEDIUM = 'medium'
RISK_HIGH = 'high'
RISK_CRITICAL = 'critical'


class FileSecurityInspector:
    """
    Screens an upload by its filename, declared content type and first bytes
    before any of it reaches the pipeline.

    Risk levels:
    1. critical: always blocked (screensaver, PIF and COM executables)
    2. high: multiple extensions, suspicious keywords, scripts, a MIME type
       or content header that contradicts the extension
    3. medium: plugins and installers, allowed but flagged for verification
    4. low: everything else
    """

    AUDIO_EXTENSIONS = {'mp3', 'wav', 'aiff', 'flac', 'm4a', 'ogg', 'wma', 'aac'}
    # Plugins are part of a musician's project folder
    PLUGIN_EXTENSIONS = {'dll', 'vst', 'vst3', 'component', 'au', 'aax'}
    EXECUTABLE_EXTENSIONS = {'exe', 'msi', 'pkg', 'dmg', 'app'}
    SCRIPT_EXTENSIONS = {'bat', 'cmd', 'ps1', 'vbs', 'js', 'sh', 'py', 'rb'}
    BLOCKED_EXTENSIONS = {'scr', 'pif', 'com'}

    SUSPICIOUS_KEYWORDS = (
        'virus', 'malware', 'trojan', 'keylogger', 'backdoor', 'rootkit',
        'hack', 'crack', 'keygen', 'patch', 'loader',
    )

    EXTENSION_LIKE = re.compile(r'^[a-z0-9]{2,4}$')
    # Windows PE header
    EXECUTABLE_MAGIC = b'MZ'

    def __init__(self, filename, content_type=None):
        self.filename = filename or ''
        self.content_type = content_type or ''
        self.risk_level = RISK_LOW
        self.threats = []
        self.warnings = []
        self.blocked = False
        self.requires_verification = False

    @property
    def extension(self):
        parts = self.filename.strip().lower().split('.')
        return parts[-1] if len(parts) > 1 else ''

    @property
    def safe(self):
        return not self.threats

    @property
    def has_findings(self):
        return bool(self.threats or self.warnings or self.requires_verification)

    def inspect(self, head=None):
        """
        Runs every check. `head` is the start of the file content, when known.
        Returns self so callers can chain into to_dict().
        """
        self.risk_level = RISK_LOW
        self.threats = []
        self.warnings = []
        self.blocked = False
        self.requires_verification = False

        name = self.filename.strip().lower()
        if not name:
            self.threats.append('Invalid or missing filename')
            self.risk_level = RISK_HIGH
            return self

        high_risk = False
        if self._has_multiple_extensions(name):
            self.threats.append('Multiple file extensions detected')
            high_risk = True

        if self.extension in self.BLOCKED_EXTENSIONS:
            self.threats.append('File type is always blocked for security')
            self.blocked = True
            self.risk_level = RISK_CRITICAL
            logger.warning(f"Blocked file type: {self.filename}")
            return self

        if any(keyword in name for keyword in self.SUSPICIOUS_KEYWORDS):
            self.threats.append('Suspicious naming pattern')
            high_risk = True

        if self.extension in self.SCRIPT_EXTENSIONS:
            self.threats.append('Script file with potential for malicious execution')
            high_risk = True

        if self.content_type and self._has_mime_type_mismatch():
            self.threats.append('MIME type mismatch detected')
            high_risk = True

        if head and head.startswith(self.EXECUTABLE_MAGIC) and self.extension not in self.EXECUTABLE_EXTENSIONS:
            self.threats.append('Executable content in a non-executable file')
            high_risk = True

        if high_risk:
            self.risk_level = RISK_HIGH
        elif self.extension in self.PLUGIN_EXTENSIONS or self.extension in self.EXECUTABLE_EXTENSIONS:
            self.risk_level = RISK_MEDIUM
            self.requires_verification = True
            self.warnings.append('Executable file detected')

        if self.threats:
            logger.warning(f"Security findings for {self.filename} ({self.risk_level}): {', '.join(self.threats)}")
        return self

    def to_dict(self):
        return {
            'risk_level': self.risk_level,
            'threats': list(self.threats),
            'warnings': list(self.warnings),
            'blocked': self.blocked,
            'requires_verification': self.requires_verification,
        }

    def _has_multiple_extensions(self, name):
        parts = name.split('.')
        if len(parts) < 3:
            return False
        return bool(self.EXTENSION_LIKE.match(parts[-2]) and self.EXTENSION_LIKE.match(parts[-1]))

    def _has_mime_type_mismatch(self):
        content_type = self.content_type.lower()
        if 'executable' not in content_type:
            return False
        return self.extension not in self.EXECUTABLE_EXTENSIONS
