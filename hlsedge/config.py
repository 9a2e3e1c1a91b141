import os
import logging
import random
from dotenv import load_dotenv

load_dotenv() # Load variables from .env file

# Logging configuration
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

# --- Server ---
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", 7860))
PROXY_PATH = os.environ.get("PROXY_PATH", "/api/proxy")
HEALTH_PATH = os.environ.get("HEALTH_PATH", "/api/health")

# --- Upstream fetch ---
UPSTREAM_TIMEOUT = float(os.environ.get("UPSTREAM_TIMEOUT", 30))
SEGMENT_CACHE_TTL = int(os.environ.get("SEGMENT_CACHE_TTL", 300))  # Segments are immutable once published

# Headers set by the hosting edge (e.g. Cloudflare) carrying the client IP / country
CLIENT_IP_HEADER = os.environ.get("CLIENT_IP_HEADER", "CF-Connecting-IP")
COUNTRY_HEADER = os.environ.get("COUNTRY_HEADER", "CF-IPCountry")


def _split_entries(raw: str) -> list:
    """Splits '{A=1, B=2}, {A=3}' into ['A=1,B=2', 'A=3']."""
    parts = [part.strip() for part in raw.replace(' ', '').split('},{')]
    return [part.strip('{}') for part in parts if part.strip('{}')]


# --- Outbound proxy configuration ---
def parse_proxies(proxy_env_var: str) -> list:
    """Parses a comma-separated proxy string from an environment variable."""
    proxies_str = os.environ.get(proxy_env_var, "").strip()
    if proxies_str:
        return [p.strip() for p in proxies_str.split(',') if p.strip()]
    return []

def parse_transport_routes() -> list:
    """Parses TRANSPORT_ROUTES in the format {URL=domain, PROXY=proxy, DISABLE_SSL=true/false}, {URL=domain2, PROXY=proxy2}"""
    routes_str = os.environ.get('TRANSPORT_ROUTES', "").strip()
    if not routes_str:
        return []

    routes = []
    for part in _split_entries(routes_str):
        url_match = None
        proxy_match = None
        disable_ssl = False

        for item in part.split(','):
            if item.startswith('URL='):
                url_match = item[4:]
            elif item.startswith('PROXY='):
                proxy_match = item[6:]
            elif item.startswith('DISABLE_SSL='):
                disable_ssl = item[12:].lower() in ('true', '1', 'yes', 'on')

        if not url_match:
            logger.warning(f"Skipping transport route without URL: {part}")
            continue

        routes.append({
            'url': url_match,
            'proxy': proxy_match or None,
            'disable_ssl': disable_ssl
        })

    return routes

def parse_streaming_origins() -> list:
    """Parses STREAMING_ORIGINS in the format {MATCH=frag1|frag2, ORIGIN=https://site}, {...}"""
    origins_str = os.environ.get('STREAMING_ORIGINS', "").strip()
    if not origins_str:
        return []

    rules = []
    for part in _split_entries(origins_str):
        fragments = []
        origin = None

        for item in part.split(','):
            if item.startswith('MATCH='):
                fragments = [f.lower() for f in item[6:].split('|') if f]
            elif item.startswith('ORIGIN='):
                origin = item[7:].rstrip('/')

        if not fragments or not origin:
            logger.warning(f"Skipping malformed streaming origin rule: {part}")
            continue

        rules.append({'match': tuple(fragments), 'origin': origin})

    return rules

def get_proxy_for_url(url: str, transport_routes: list, global_proxies: list) -> str:
    """Finds the appropriate proxy for a URL based on TRANSPORT_ROUTES"""
    for route in transport_routes or []:
        if route['url'] in url:
            # An empty PROXY means direct connection for this route
            return route['proxy']

    return random.choice(global_proxies) if global_proxies else None

def get_ssl_setting_for_url(url: str, transport_routes: list) -> bool:
    """Determines if SSL verification should be disabled for a URL based on TRANSPORT_ROUTES"""
    for route in transport_routes or []:
        if route['url'] in url:
            return route.get('disable_ssl', False)

    return False

GLOBAL_PROXIES = parse_proxies('GLOBAL_PROXY')
TRANSPORT_ROUTES = parse_transport_routes()
STREAMING_ORIGINS = parse_streaming_origins()

if GLOBAL_PROXIES: logging.info(f"🌍 Loaded {len(GLOBAL_PROXIES)} global proxies.")
if TRANSPORT_ROUTES: logging.info(f"🚦 Loaded {len(TRANSPORT_ROUTES)} transport rules.")
if STREAMING_ORIGINS: logging.info(f"🎯 Loaded {len(STREAMING_ORIGINS)} extra streaming origin rules.")
