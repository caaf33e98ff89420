"""Entry point: ``python -m rproxy``."""
from __future__ import annotations

import logging
import sys

import uvicorn

from rproxy.core.config import load_settings
from rproxy.core.errors import ConfigError
from rproxy.core.logging import setup_logging
from rproxy.main import create_app

log = logging.getLogger("Proxy")


def main() -> int:
    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"Initialization failed: {e}", file=sys.stderr)
        return 1

    setup_logging(settings.log.level)
    log.info("config file: %s", settings.config_path)
    log.info("server: %s:%s", settings.server.host, settings.server.port)
    log.info("target: %s", settings.target.base_url)
    log.info("path prefix: %s", settings.proxy.path_prefix)
    log.info("request timeout: %ss", settings.request.timeout)
    log.info("accept invalid certs: %s", settings.request.accept_invalid_certs)

    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
        # the relayed upstream headers are the only ones sent back
        server_header=False,
        date_header=False,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
