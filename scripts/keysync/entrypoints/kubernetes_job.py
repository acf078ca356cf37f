"""Kubernetes CronJob entry point for key sync.

Runs one reconciliation and exits. Configuration comes entirely from the
pod environment.

Usage:
  KEYSYNC_MODE=files DIRECTORY_KEYS_BASE=/etc/ssh/authorized_keys.d \
  PASSWORD_FILE=/etc/passwd PASSWORDS_TEMPLATE=alpine.passwords \
    python -m scripts.keysync.entrypoints.kubernetes_job

  KEYSYNC_MODE=snapshot CONTROLLER_KEYS_PATH=/var/lib/rabbit-ssh/state.json \
    python -m scripts.keysync.entrypoints.kubernetes_job
"""

from __future__ import annotations

import logging
import os
import sys

from scripts.keysync.cli import execute_run
from scripts.keysync.config import load_config
from scripts.keysync.errors import ConfigError
from scripts.keysync.logging_config import configure_logging

logger = logging.getLogger("keysync.job")


def main() -> None:
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))
    logger.info("Key sync job started on %s", os.environ.get("HOSTNAME", "unknown"))

    try:
        config = load_config()
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        sys.exit(2)

    result = execute_run(config)
    if result is None:
        sys.exit(1)
    logger.info("Key sync job complete: %s", result.summary())


if __name__ == "__main__":
    main()
