import asyncio
import logging
import urllib.parse
from datetime import datetime, timezone
from urllib.parse import urlsplit

import aiohttp
from aiohttp import web, ClientSession, ClientTimeout
from aiohttp_socks import ProxyConnector

from hlsedge import __version__
from hlsedge.config import (
    GLOBAL_PROXIES, TRANSPORT_ROUTES, PROXY_PATH, UPSTREAM_TIMEOUT, SEGMENT_CACHE_TTL,
    get_proxy_for_url, get_ssl_setting_for_url,
)
from hlsedge.errors import ProxyError, MissingParameter, InvalidTarget, UpstreamError, UpstreamTimeout
from hlsedge.services.headers import cors_headers, build_outbound_headers
from hlsedge.services.manifest_rewriter import ManifestRewriter, HLS_MARKER
from hlsedge.utils.classify import TargetKind, HLS_MIME_TYPE, DEFAULT_MIME_TYPE, classify_target, default_content_type

logger = logging.getLogger(__name__)

# Informational upstream headers relayed to the client when present
FORWARD_HEADERS = [
    'Content-Length', 'Content-Range', 'Accept-Ranges',
    'Last-Modified', 'ETag', 'Content-Disposition'
]

NO_CACHE_HEADERS = {
    'Cache-Control': 'no-cache, no-store, must-revalidate',
    'Pragma': 'no-cache',
    'Expires': '0',
}

CHUNK_SIZE = 8192

# Set once a segment response is prepared and its headers are on the wire
STREAM_RESPONSE_KEY = web.RequestKey('stream_response', web.StreamResponse)


class HLSProxy:
    """HLS proxy: forwards requests with browser headers and rewrites playlists through itself"""

    def __init__(self, timeout=UPSTREAM_TIMEOUT, proxy_path=PROXY_PATH, streaming_origins=None,
                 global_proxies=None, transport_routes=None, segment_cache_ttl=SEGMENT_CACHE_TTL):
        self.timeout = timeout
        self.proxy_path = proxy_path
        # None keeps the built-in + configured provider rules
        self.streaming_origins = streaming_origins
        self.global_proxies = GLOBAL_PROXIES if global_proxies is None else global_proxies
        self.transport_routes = TRANSPORT_ROUTES if transport_routes is None else transport_routes
        self.segment_cache_ttl = segment_cache_ttl

    def _create_session(self, url: str) -> ClientSession:
        """Fresh session per request, routed through an outbound proxy when one applies.

        No total limit: long segment bodies may outlast the timeout as long as
        each read keeps making progress.
        """
        timeout = ClientTimeout(total=None, sock_connect=self.timeout, sock_read=self.timeout)
        proxy = get_proxy_for_url(url, self.transport_routes, self.global_proxies)
        if proxy:
            logger.info(f"🌍 Using proxy {proxy} for: {url}")
            return ClientSession(timeout=timeout, connector=ProxyConnector.from_url(proxy))
        return ClientSession(timeout=timeout)

    @staticmethod
    def _get_proxy_base(request) -> str:
        # Detect the public scheme and host when running behind a reverse proxy
        scheme = request.headers.get('X-Forwarded-Proto', request.scheme)
        host = request.headers.get('X-Forwarded-Host', request.host)
        return f"{scheme}://{host}"

    @staticmethod
    def _get_target_url(request) -> str:
        """Reads the 'url' query parameter and validates it as an absolute http(s) URL."""
        raw_url = request.query.get('url', '').strip()
        if not raw_url:
            raise MissingParameter("URL parameter required")

        target_url = raw_url
        # Double-encoded targets arrive still escaped after query parsing
        if '://' not in target_url and '%' in target_url:
            target_url = urllib.parse.unquote(target_url)

        try:
            parts = urlsplit(target_url)
            hostname = parts.hostname
            # Raises on ports outside 0-65535
            parts.port
        except ValueError as e:
            raise InvalidTarget(f"Invalid target URL: {e}", url=raw_url)

        if parts.scheme.lower() not in ('http', 'https') or not hostname:
            raise InvalidTarget(f"Invalid target URL: {raw_url}", url=raw_url)
        return target_url

    @staticmethod
    def _debug_requested(request) -> bool:
        return request.query.get('debug', '').lower() not in ('', '0', 'false')

    @staticmethod
    def _forwarded_headers(resp, keep_length=True) -> dict:
        headers = {}
        for header in FORWARD_HEADERS:
            if header == 'Content-Length' and not keep_length:
                continue
            value = resp.headers.get(header)
            if value:
                headers[header] = value
        return headers

    @staticmethod
    def _check_upstream(resp, target_url):
        if not 200 <= resp.status < 300:
            logger.warning(f"⚠️ Upstream returned error {resp.status} for {target_url}")
            raise UpstreamError(f"HTTP {resp.status}: {resp.reason}", url=target_url, upstream_status=resp.status)

    async def handle_proxy_request(self, request):
        """Handles main proxy requests"""
        if request.method == 'OPTIONS':
            return await self.handle_options(request)

        raw_url = request.query.get('url')
        try:
            target_url = self._get_target_url(request)
            kind = classify_target(target_url)
            headers = build_outbound_headers(target_url, kind, request.headers, self.streaming_origins)
            disable_ssl = get_ssl_setting_for_url(target_url, self.transport_routes)

            logger.info(f"🔍 Proxy [{kind.value}] {target_url}")

            async with self._create_session(target_url) as session:
                # The header phase is bounded as a whole
                resp = await asyncio.wait_for(
                    session.get(target_url, headers=headers, ssl=not disable_ssl), self.timeout
                )
                async with resp:
                    self._check_upstream(resp, target_url)

                    if kind is TargetKind.SEGMENT:
                        return await self._proxy_segment(request, resp, target_url)
                    if kind is TargetKind.MANIFEST:
                        return await self._proxy_manifest(request, resp, target_url)
                    return await self._proxy_passthrough(resp, target_url)

        except ProxyError as e:
            return self._error_response(e, raw_url)

        except asyncio.TimeoutError:
            if self._stream_started(request):
                logger.warning(f"⚠️ Timeout while streaming: {raw_url}")
                raise
            error = UpstreamTimeout(f"Upstream request timed out after {self.timeout:g}s", url=raw_url)
            return self._error_response(error, raw_url)

        except aiohttp.ClientError as e:
            if self._stream_started(request):
                logger.warning(f"⚠️ Connection lost with source while streaming: {raw_url} ({e})")
                raise
            error = UpstreamError(f"Upstream connection failed: {e}", url=raw_url)
            return self._error_response(error, raw_url)

        except Exception as e:
            if self._stream_started(request):
                raise
            logger.exception(f"❌ Generic error in proxy: {e}")
            return self._error_response(ProxyError(str(e) or type(e).__name__, url=raw_url), raw_url)

    @staticmethod
    def _stream_started(request) -> bool:
        # Once headers are on the wire the only option left is aborting the connection
        response = request.get(STREAM_RESPONSE_KEY)
        return response is not None and response.prepared

    async def _proxy_segment(self, request, resp, target_url):
        """Streams a media segment through unmodified, with a short cache lifetime"""
        response_headers = cors_headers()
        # aiohttp decompresses transparently, so the upstream length would be wrong
        keep_length = 'Content-Encoding' not in resp.headers
        response_headers.update(self._forwarded_headers(resp, keep_length=keep_length))
        response_headers['Content-Type'] = resp.headers.get('Content-Type') or default_content_type(target_url, TargetKind.SEGMENT)
        response_headers['Cache-Control'] = f'public, max-age={self.segment_cache_ttl}'

        response = web.StreamResponse(status=resp.status, headers=response_headers)
        request[STREAM_RESPONSE_KEY] = response
        await response.prepare(request)

        async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
            await response.write(chunk)

        await response.write_eof()
        logger.debug(f"📦 Segment relayed: {target_url}")
        return response

    async def _proxy_manifest(self, request, resp, target_url):
        """Buffers a playlist, rewrites its URIs and serves it uncached"""
        content_bytes = await resp.read()
        try:
            manifest = content_bytes.decode(resp.charset or 'utf-8')
        except (UnicodeDecodeError, LookupError):
            raise UpstreamError("Manifest body is not valid text", url=target_url)

        if ManifestRewriter.is_playlist(manifest):
            proxy_base = self._get_proxy_base(request)
            manifest = ManifestRewriter.rewrite_playlist(manifest, target_url, proxy_base, self.proxy_path)
            if self._debug_requested(request):
                manifest = ManifestRewriter.debug_banner(target_url) + manifest
            logger.info(f"🔄 Manifest rewritten through {proxy_base}{self.proxy_path}")
        else:
            logger.warning(f"⚠️ Manifest without {HLS_MARKER} marker, relaying as is: {target_url}")

        headers = cors_headers()
        headers.update(self._forwarded_headers(resp, keep_length=False))
        headers.update(NO_CACHE_HEADERS)
        headers['Content-Type'] = HLS_MIME_TYPE
        return web.Response(text=manifest, status=resp.status, headers=headers)

    async def _proxy_passthrough(self, resp, target_url):
        body = await resp.read()
        headers = cors_headers()
        headers.update(self._forwarded_headers(resp, keep_length=False))
        headers['Content-Type'] = resp.headers.get('Content-Type') or DEFAULT_MIME_TYPE
        logger.debug(f"Passthrough {len(body)} bytes: {target_url}")
        return web.Response(body=body, status=resp.status, headers=headers)

    def _error_response(self, error: ProxyError, raw_url):
        """Structured error; playlist-shaped for manifest targets so HLS players can parse it"""
        if error.status >= 500:
            logger.error(f"❌ Proxy error [{error.code}] {error.message} ({raw_url})")
        else:
            logger.warning(f"⚠️ Bad proxy request [{error.code}] {error.message}")

        headers = cors_headers()
        if raw_url and '.m3u8' in raw_url.lower():
            headers['Content-Type'] = HLS_MIME_TYPE
            return web.Response(text=ManifestRewriter.error_playlist(error.message), status=error.status, headers=headers)

        return web.json_response({
            'error': error.code,
            'message': error.message,
            'url': raw_url
        }, status=error.status, headers=headers)

    async def handle_options(self, request):
        """Handles OPTIONS requests for CORS"""
        return web.Response(headers=cors_headers())

    async def handle_health(self, request):
        return web.json_response({
            'status': 'online',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'version': __version__
        }, headers=cors_headers())

    async def handle_fallback(self, request):
        """Preflight for any path, CORS-enabled 404 for everything else"""
        if request.method == 'OPTIONS':
            return await self.handle_options(request)
        return web.Response(text='Not Found', status=404, content_type='text/plain', headers=cors_headers())
