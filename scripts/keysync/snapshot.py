"""JSON snapshot hand-off for the privileged key updater."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Union

from scripts.keysync.models import ResolvedState

logger = logging.getLogger("keysync.snapshot")


def write_snapshot(state: ResolvedState, path: Union[str, Path]) -> Path:
    """Overwrite ``path`` with ``{"keys": {account: [key, ...]}}``."""
    path = Path(path)
    payload = {"keys": {account: list(keys) for account, keys in state.keys.items()}}
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    logger.info(
        "Wrote key snapshot for %d accounts", len(payload["keys"]),
        extra={"path": str(path), "count": len(payload["keys"])},
    )
    return path


def load_snapshot(path: Union[str, Path]) -> dict[str, list[str]]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    keys = data.get("keys") if isinstance(data, dict) else None
    if not isinstance(keys, dict):
        raise ValueError(f"{path} is not a key snapshot")
    return {str(account): [str(k) for k in lines] for account, lines in keys.items()}
