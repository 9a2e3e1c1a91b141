import enum
from urllib.parse import urlsplit

HLS_MIME_TYPE = 'application/vnd.apple.mpegurl'
DEFAULT_MIME_TYPE = 'application/octet-stream'

# Extension -> content-type used when upstream does not send one
SEGMENT_TYPES = {
    'ts': 'video/mp2t',
    'm4s': 'video/iso.segment',
    'mp4': 'video/mp4',
    'm4v': 'video/mp4',
    'm4a': 'audio/mp4',
    'aac': 'audio/aac',
    'mp3': 'audio/mpeg',
    'vtt': 'text/vtt',
    'webvtt': 'text/vtt',
    'key': DEFAULT_MIME_TYPE,
}


class TargetKind(enum.Enum):
    MANIFEST = 'manifest'
    SEGMENT = 'segment'
    OTHER = 'other'


def _extension(url: str) -> str:
    path = urlsplit(url).path
    last = path.rsplit('/', 1)[-1]
    if '.' not in last:
        return ''
    return last.rsplit('.', 1)[-1].lower()


def classify_target(url: str) -> TargetKind:
    """Classifies a target URL by the extension of its path (query string ignored)."""
    ext = _extension(url)
    if ext == 'm3u8':
        return TargetKind.MANIFEST
    if ext in SEGMENT_TYPES:
        return TargetKind.SEGMENT
    return TargetKind.OTHER


def default_content_type(url: str, kind: TargetKind = None) -> str:
    kind = kind or classify_target(url)
    if kind is TargetKind.MANIFEST:
        return HLS_MIME_TYPE
    if kind is TargetKind.SEGMENT:
        return SEGMENT_TYPES[_extension(url)]
    return DEFAULT_MIME_TYPE
