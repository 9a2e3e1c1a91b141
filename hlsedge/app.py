import logging

from aiohttp import web

from hlsedge import __version__
from hlsedge.config import HOST, PORT, PROXY_PATH, HEALTH_PATH
from hlsedge.routes.web_player import web_player_bp
from hlsedge.services.hls_proxy import HLSProxy

logger = logging.getLogger(__name__)


def create_app(proxy: HLSProxy = None) -> web.Application:
    """Builds the aiohttp application with proxy, health and page routes."""
    proxy = proxy or HLSProxy()
    app = web.Application()

    # Proxy route accepts every method; OPTIONS is answered as a preflight
    app.router.add_route('*', PROXY_PATH, proxy.handle_proxy_request)
    app.router.add_get(HEALTH_PATH, proxy.handle_health)
    app.router.add_routes(web_player_bp)

    # Catch-all: preflight for any path, plain 404 for everything else
    app.router.add_route('*', '/{tail:.*}', proxy.handle_fallback)

    return app


def main():
    logger.info(f"🚀 HLS Edge Proxy v{__version__} listening on {HOST}:{PORT}")
    logger.info(f"   Proxy: {PROXY_PATH}?url=<encoded URL> | Health: {HEALTH_PATH}")
    web.run_app(create_app(), host=HOST, port=PORT)


if __name__ == '__main__':
    main()
