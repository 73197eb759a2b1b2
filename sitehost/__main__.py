"""sitehost - HTTP server entry point."""

import logging
import sys

import uvicorn

from .config import Settings
from .main import create_app

_LOG = logging.getLogger("sitehost")


def main() -> None:
    """Main entry point."""
    settings = Settings.from_env()

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    if not settings.api_key:
        _LOG.warning("API_KEY not set, deploys, backups and publishing are disabled")

    _LOG.info("Serving %s from %s on %s:%d", settings.base_domain, settings.data_dir, settings.host, settings.port)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
