"""Standalone entrypoint for the Restart Sentry pod watcher."""

from __future__ import annotations

import logging
import sys

from kubernetes.config.config_exception import ConfigException

from .config import settings
from .service import RestartMonitorService

logger = logging.getLogger(__name__)


def main():
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    service = RestartMonitorService(settings)
    try:
        service.start()
    except ConfigException as exc:
        logger.critical(f"Failed to load kubeconfig: {exc}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        service.stop()


if __name__ == "__main__":  # pragma: no cover
    main()
