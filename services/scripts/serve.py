"""
Run the GradCollab API with uvicorn.

In production (IS_PROD) the listener serves HTTPS and requires the key and
certificate paths; otherwise it serves plain HTTP.
"""

from __future__ import annotations

import argparse
import copy
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import uvicorn
from uvicorn.config import LOGGING_CONFIG

from gradcollab.config import get_settings

logger = logging.getLogger(__name__)


def build_log_config(level: str) -> dict:
    """
    Uvicorn's logging config plus the application loggers.

    Uvicorn applies this in every server process, including the reload worker.
    """
    log_config = copy.deepcopy(LOGGING_CONFIG)
    log_config["loggers"]["gradcollab"] = {
        "handlers": ["default"],
        "level": level.upper(),
        "propagate": False,
    }
    return log_config


def main() -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="GradCollab API server")
    parser.add_argument(
        "--host",
        type=str,
        default=settings.host,
        help="Interface to bind",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=settings.port,
        help="Port to listen on",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Reload on code changes (development only)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ssl_options = {}
    if settings.is_prod:
        if not settings.ssl_keyfile or not settings.ssl_certfile:
            logger.error("IS_PROD requires SSL_KEYFILE and SSL_CERTFILE")
            return 1
        ssl_options = {
            "ssl_keyfile": settings.ssl_keyfile,
            "ssl_certfile": settings.ssl_certfile,
        }
        if args.reload:
            logger.warning("Ignoring --reload in production")
            args.reload = False

    logger.info(
        "Starting GradCollab API on %s:%s (%s)",
        args.host,
        args.port,
        "https" if ssl_options else "http",
    )
    uvicorn.run(
        "gradcollab.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
        log_config=build_log_config(settings.log_level),
        **ssl_options,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
