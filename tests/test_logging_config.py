from __future__ import annotations

import json
import logging

from scripts.keysync.logging_config import JsonFormatter, mask_token


def test_json_formatter_carries_stage_context():
    record = logging.LogRecord(
        "keysync.github", logging.WARNING, __file__, 1, "Key fetch returned HTTP %d", (404,), None
    )
    record.stage = "keys"
    record.account = "alice"
    record.unrelated = "dropped"

    entry = json.loads(JsonFormatter().format(record))

    assert entry["message"] == "Key fetch returned HTTP 404"
    assert entry["logger"] == "keysync.github"
    assert entry["stage"] == "keys"
    assert entry["account"] == "alice"
    assert "unrelated" not in entry
    assert "login" not in entry


def test_mask_token_keeps_last_four_characters():
    assert mask_token("ghp_abcdef1234") == "****1234"
    assert mask_token("abcd") == "****"
