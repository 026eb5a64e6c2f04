"""
Process entry point.

Usage:
    python -m optionsentinel.app
    optionsentinel                 # console script
"""

import logging

import uvicorn

from optionsentinel.api.server import create_app
from optionsentinel.config import load_settings

logger = logging.getLogger(__name__)


def main():
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not settings.tradier_api_key:
        logger.warning("TRADIER_API_KEY is not set; upstream calls will be rejected")

    app = create_app(settings)
    logger.info("OptionSentinel server running on port %d", settings.port)
    logger.info("REST:      http://localhost:%d/api/", settings.port)
    logger.info("WebSocket: ws://localhost:%d/ws", settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
