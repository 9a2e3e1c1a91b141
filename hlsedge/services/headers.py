import logging
from urllib.parse import urlsplit

from hlsedge.config import CLIENT_IP_HEADER, COUNTRY_HEADER, STREAMING_ORIGINS
from hlsedge.utils.classify import TargetKind

logger = logging.getLogger(__name__)

# Default User-Agent for all outgoing requests
DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"

HLS_ACCEPT = "application/x-mpegURL, application/vnd.apple.mpegurl, */*"

# Providers whose CDNs reject requests without their own Origin/Referer
BUILTIN_STREAMING_ORIGINS = [
    {'match': ('sonydaimenew', 'sonyliv'), 'origin': 'https://www.sonyliv.com'},
]

# Client headers passed onward for range/conditional segment requests
SEGMENT_PASSTHROUGH_HEADERS = ['Range', 'If-None-Match', 'If-Modified-Since']


def cors_headers() -> dict:
    """Permissive CORS headers, a new mapping for every response."""
    return {
        'Access-Control-Allow-Origin': '*',
        'Access-Control-Allow-Methods': 'GET, POST, OPTIONS',
        'Access-Control-Allow-Headers': '*',
        'Access-Control-Expose-Headers': '*',
        'Access-Control-Max-Age': '86400',
    }


def base_headers() -> dict:
    """Browser identity sent on every outbound request."""
    return {
        'User-Agent': DEFAULT_USER_AGENT,
        'Accept': '*/*',
        'Accept-Language': 'en-US,en;q=0.9',
        'Accept-Encoding': 'gzip, deflate',
        'Connection': 'keep-alive',
        'Cache-Control': 'no-cache',
        'Pragma': 'no-cache',
        'sec-ch-ua': '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
        'sec-ch-ua-mobile': '?0',
        'sec-ch-ua-platform': '"Windows"',
        'Sec-Fetch-Dest': 'empty',
        'Sec-Fetch-Mode': 'cors',
        'Sec-Fetch-Site': 'cross-site',
        'DNT': '1',
    }


def match_streaming_origin(target_url: str, rules=None):
    """Returns the provider site whose domain fragment appears in the target host, or None."""
    host = (urlsplit(target_url).hostname or '').lower()
    if not host:
        return None
    if rules is None:
        rules = BUILTIN_STREAMING_ORIGINS + STREAMING_ORIGINS
    for rule in rules:
        if any(fragment in host for fragment in rule['match']):
            return rule['origin']
    return None


def origin_overrides(target_url: str, inbound_headers, rules=None) -> dict:
    """Headers replacing the base profile for known streaming providers.

    Client IP and country are relayed from the trusted edge headers; when
    the edge did not supply them an empty value is sent, never a guess.
    """
    site = match_streaming_origin(target_url, rules)
    if not site:
        return {}

    return {
        'Origin': site,
        'Referer': f"{site}/",
        'Host': urlsplit(target_url).netloc,
        'Accept': HLS_ACCEPT,
        'X-Requested-With': 'XMLHttpRequest',
        'X-Forwarded-For': inbound_headers.get(CLIENT_IP_HEADER, ''),
        'CF-IPCountry': inbound_headers.get(COUNTRY_HEADER, ''),
    }


def build_outbound_headers(target_url: str, kind: TargetKind, inbound_headers, rules=None) -> dict:
    headers = base_headers()
    overrides = origin_overrides(target_url, inbound_headers, rules)
    if overrides:
        logger.debug(f"🎯 Origin override {overrides['Origin']} for {target_url}")
    headers.update(overrides)

    if kind is TargetKind.SEGMENT:
        for header in SEGMENT_PASSTHROUGH_HEADERS:
            if header in inbound_headers:
                headers[header] = inbound_headers[header]

    return {k: v for k, v in headers.items() if v is not None}
