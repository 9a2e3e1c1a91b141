import logging
import os

from aiohttp import web

logger = logging.getLogger(__name__)

web_player_bp = web.RouteTableDef()

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'templates')


def _read_template(filename: str) -> str:
    """Helper function to read a template file."""
    with open(os.path.join(TEMPLATES_DIR, filename), 'r', encoding='utf-8') as f:
        return f.read()


@web_player_bp.get('/')
async def home_page(request):
    """Serves the main index.html page."""
    try:
        return web.Response(text=_read_template('index.html'), content_type='text/html')
    except OSError as e:
        logger.error(f"❌ Critical error: unable to load 'index.html': {e}")
        return web.Response(text="<h1>Error 500</h1><p>Page not found.</p>", status=500, content_type='text/html')


@web_player_bp.get('/player')
async def player_page(request):
    """Renders the player HTML page."""
    try:
        return web.Response(text=_read_template('player.html'), content_type='text/html')
    except OSError as e:
        logger.error(f"Error serving player page: {e}")
        return web.Response(text="Error loading player page", status=500)
