"""
Run the money-market stress API.

Usage:
    FRED_API_KEY=... python -m money_market_stress
"""

import logging

from aiohttp import web

from .app.app import create_app
from .config import Settings
from .data.scraping_infrastructure import setup_logging

logger = logging.getLogger(__name__)


def main():
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    logger.info(f"Starting money-market stress API on {settings.host}:{settings.port}")
    web.run_app(create_app(settings), host=settings.host, port=settings.port, print=None)


if __name__ == "__main__":
    main()
