"""Random selection over a pool of GitHub access tokens."""

from __future__ import annotations

import logging
import random
from typing import Iterable, Optional

from scripts.keysync.errors import ConfigError
from scripts.keysync.logging_config import mask_token

logger = logging.getLogger("keysync.tokens")


class TokenPool:
    """Spread API quota usage by picking a token at random per request."""

    def __init__(self, tokens: Iterable[str], rng: Optional[random.Random] = None) -> None:
        self._tokens = [t for t in tokens if t]
        if not self._tokens:
            raise ConfigError("Missing [accessTokens].")
        self._rng = rng or random.Random()

    def __len__(self) -> int:
        return len(self._tokens)

    def select(self) -> str:
        return self._rng.choice(self._tokens)

    def exclude(self, token: str) -> bool:
        """Drop an exhausted token for the rest of the run.

        The last remaining token is never dropped. Returns True if removed.
        """
        if token not in self._tokens or len(self._tokens) == 1:
            return False
        self._tokens.remove(token)
        logger.warning(
            "Excluded token %s from pool, %d left", mask_token(token), len(self._tokens)
        )
        return True
