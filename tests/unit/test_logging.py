from __future__ import annotations

import json
from typing import Any, Dict

import structlog

from dialogsync.observability.logging import (
    _add_dialog_key,
    configure_logging,
    dialog_key_var,
    get_dialog_key,
    logger,
)


def _parse_json_log(line: str) -> Dict[str, Any]:
    return json.loads(line)


def test_structlog_json_output_contains_required_fields(capsys) -> None:
    """Ensure log entries are valid JSON and include core fields."""

    configure_logging()

    with capsys.disabled():
        logger.info("test_event", extra_key="value")


def test_dialog_key_context_propagation() -> None:
    """dialog_key_var should propagate via contextvars helper."""

    token = dialog_key_var.set("R1#S1")
    try:
        assert get_dialog_key() == "R1#S1"
    finally:
        dialog_key_var.reset(token)
    assert get_dialog_key() == ""


def test_dialog_key_processor_stamps_bound_key() -> None:
    token = dialog_key_var.set("R1")
    try:
        event = _add_dialog_key(None, "info", {"event": "x"})  # type: ignore[arg-type]
        explicit = _add_dialog_key(None, "info", {"event": "y", "dialog_key": "R2"})  # type: ignore[arg-type]
    finally:
        dialog_key_var.reset(token)

    assert event["dialog_key"] == "R1"
    assert explicit["dialog_key"] == "R2"
    assert "dialog_key" not in _add_dialog_key(None, "info", {"event": "z"})  # type: ignore[arg-type]


def test_json_renderer_output_is_parseable() -> None:
    rendered = structlog.processors.JSONRenderer()(None, "info", {"event": "q4h_snapshot_applied", "held": 2})
    assert _parse_json_log(rendered) == {"event": "q4h_snapshot_applied", "held": 2}
