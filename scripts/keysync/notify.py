"""Chat-ops completion notice (Slack incoming webhook)."""

from __future__ import annotations

import logging

import requests

from scripts.keysync.config import NotificationConfig

logger = logging.getLogger("keysync.notify")


def build_message(config: NotificationConfig) -> dict:
    host = config.hostname
    return {
        "channel": config.channel,
        "username": config.username,
        "text": (
            f"SSH Keys refreshed on {host} has finished. "
            f"```kubectl -n {config.exec_namespace} exec -it {host} sh```"
        ),
    }


def notify_completion(config: NotificationConfig, timeout: float = 10.0) -> bool:
    """Post the completion message. Failures are logged, never raised."""
    if not config.webhook_url:
        return False
    try:
        resp = requests.post(config.webhook_url, json=build_message(config), timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Completion notification failed: %s", exc)
        return False
    return True
