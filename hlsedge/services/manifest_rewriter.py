import logging
import re
from datetime import datetime, timezone
from urllib.parse import urlsplit, urlunsplit, urljoin, quote

logger = logging.getLogger(__name__)

HLS_MARKER = '#EXTM3U'

# Same unreserved set as JavaScript's encodeURIComponent
_COMPONENT_SAFE = "-_.!~*'()"
_SCHEME_RE = re.compile(r'^[A-Za-z][A-Za-z0-9+.-]*://')


class ManifestRewriter:
    """Rewrites HLS playlists so every media URI is fetched through the proxy."""

    @staticmethod
    def is_playlist(content: str) -> bool:
        return content.lstrip('\ufeff').lstrip().startswith(HLS_MARKER)

    @staticmethod
    def base_directory(target_url: str) -> str:
        """Target URL without query/fragment, up to and including the last '/'."""
        parts = urlsplit(target_url)
        path = parts.path or '/'
        path = path[:path.rfind('/') + 1]
        return urlunsplit((parts.scheme, parts.netloc, path, '', ''))

    @staticmethod
    def resolve_uri(uri: str, target_url: str) -> str:
        """Resolves a playlist URI line against the URL the playlist was fetched from."""
        if _SCHEME_RE.match(uri):
            return uri

        parts = urlsplit(target_url)
        if uri.startswith('//'):
            return f"{parts.scheme}:{uri}"
        if uri.startswith('/'):
            return f"{parts.scheme}://{parts.netloc}{uri}"
        return urljoin(ManifestRewriter.base_directory(target_url), uri)

    @staticmethod
    def build_proxy_url(absolute_url: str, proxy_base: str, proxy_path: str) -> str:
        return f"{proxy_base.rstrip('/')}{proxy_path}?url={quote(absolute_url, safe=_COMPONENT_SAFE)}"

    @staticmethod
    def rewrite_playlist(content: str, target_url: str, proxy_base: str, proxy_path: str = '/api/proxy') -> str:
        """Rewrites URI lines; tags, comments and blank lines are kept byte for byte.

        The output always has the same number of lines as the input.
        """
        output = []
        rewritten = 0
        for line in content.split('\n'):
            # A leading byte-order mark must not hide the #EXTM3U tag
            stripped = line.strip().lstrip('\ufeff')
            if not stripped or stripped.startswith('#'):
                output.append(line)
                continue

            absolute_url = ManifestRewriter.resolve_uri(stripped, target_url)
            output.append(ManifestRewriter.build_proxy_url(absolute_url, proxy_base, proxy_path))
            rewritten += 1

        logger.debug(f"🔄 Rewrote {rewritten} URI lines in {target_url}")
        return '\n'.join(output)

    @staticmethod
    def debug_banner(target_url: str, now: datetime = None) -> str:
        now = now or datetime.now(timezone.utc)
        return (
            "# Proxy Debug Info\n"
            f"# Original URL: {target_url}\n"
            f"# Rewritten at: {now.isoformat()}\n"
        )

    @staticmethod
    def error_playlist(message: str) -> str:
        """Minimal well-formed playlist carrying an error, for strict HLS parsers."""
        message = ' '.join(str(message).split())
        return f"{HLS_MARKER}\n#EXT-X-VERSION:3\n#EXT-X-ERROR: {message}"
