import os

DEFAULT_CONTENT_TYPE = 'application/octet-stream'

EXTENSION_CONTENT_TYPES = {
    '.mp3': 'audio/mpeg',
    '.wav': 'audio/wav',
    '.aiff': 'audio/aiff',
    '.aif': 'audio/aiff',
    '.flac': 'audio/flac',
    '.m4a': 'audio/mp4',
    '.ogg': 'audio/ogg',
    '.mp4': 'video/mp4',
    '.m4v': 'video/mp4',
    '.mov': 'video/quicktime',
    '.avi': 'video/x-msvideo',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.pdf': 'application/pdf',
    '.txt': 'text/plain',
    '.zip': 'application/zip',
}

FILE_TYPES = {
    'audio': ('.mp3', '.wav', '.aiff', '.aif', '.flac', '.m4a', '.ogg'),
    'video': ('.mp4', '.m4v', '.mov', '.avi'),
    'image': ('.jpg', '.jpeg', '.png', '.gif', '.bmp'),
    'document': ('.pdf',),
    'text': ('.txt', '.md'),
}


def file_extension(filename):
    return os.path.splitext(filename or '')[1].lower()


def resolve_content_type(filename):
    """
    Maps a filename to a MIME type by extension. Unknown extensions are generic binary.
    """
    return EXTENSION_CONTENT_TYPES.get(file_extension(filename), DEFAULT_CONTENT_TYPE)


def resolve_file_type(filename):
    extension = file_extension(filename)
    for file_type, extensions in FILE_TYPES.items():
        if extension in extensions:
            return file_type
    return 'other'
