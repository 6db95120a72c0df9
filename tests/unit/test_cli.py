"""Unit tests for CLI commands."""

from __future__ import annotations

import json

from click.testing import CliRunner

from dialogsync.app_version import get_app_version
from dialogsync.cli.main import cli

DIALOGS = {
    "dialogs": [
        {
            "rootId": "R1",
            "agentId": "planner",
            "taskDocPath": "tasks/r1.tsk",
            "status": "running",
            "currentCourse": 2,
            "subdialogCount": 1,
        },
        {"rootId": "R1", "selfId": "S1", "agentId": "coder", "taskDocPath": "tasks/r1.tsk"},
    ]
}


def _write_replay(tmp_path, lines: list) -> tuple[str, str]:
    log = tmp_path / "session.jsonl"
    log.write_text(
        "\n".join(line if isinstance(line, str) else json.dumps(line) for line in lines) + "\n",
        encoding="utf-8",
    )
    dialogs = tmp_path / "dialogs.json"
    dialogs.write_text(json.dumps(DIALOGS), encoding="utf-8")
    return str(log), str(dialogs)


def test_version_command():
    """dialogsync --version shows package version."""

    result = CliRunner().invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert get_app_version() in result.output


def test_link_parse_prints_intent():
    result = CliRunner().invoke(cli, ["link", "parse", "/dl/genseq?rootId=R1&course=2&genseq=9"])

    assert result.exit_code == 0
    assert '"genseq": 9' in result.output
    assert "/dl/genseq?rootId=R1&selfId=R1&course=2&genseq=9" in result.output


def test_link_parse_rejects_bad_links():
    missing = CliRunner().invoke(cli, ["link", "parse", "/dl/callsite?rootId=R1"])
    not_a_link = CliRunner().invoke(cli, ["link", "parse", "/dialogs/R1"])

    assert missing.exit_code == 1
    assert "course" in missing.output
    assert not_a_link.exit_code == 1
    assert "Not a deep link" in not_a_link.output


def test_replay_renders_final_state(tmp_path):
    log, dialogs = _write_replay(
        tmp_path,
        [
            "# recorded from a dev workspace",
            {"type": "dlg_run_state_evt", "dialog": {"rootId": "R1", "selfId": "R1"}, "runState": {"kind": "interrupted"}},
            {
                "type": "new_q4h_asked",
                "question": {"id": "q-1", "rootId": "R1", "selfId": "R1", "callSiteRef": {"course": 2}},
            },
            "garbage",
        ],
    )

    result = CliRunner().invoke(
        cli, ["replay", log, "--dialogs", dialogs, "--deep-link", "/dl/dialog?rootId=R1&selfId=S1"]
    )

    assert result.exit_code == 0, result.output
    assert "Dialogs" in result.output
    assert "stoppable=0 resumable=1" in result.output
    assert "q-1" in result.output
    assert "Ignored invalid message" in result.output
    assert "Deep link resolved" in result.output


def test_replay_fails_on_protocol_violation(tmp_path):
    question = {"id": "q-1", "rootId": "R1", "selfId": "R1", "callSiteRef": {"course": 1}}
    log, dialogs = _write_replay(
        tmp_path,
        [
            {"type": "new_q4h_asked", "question": question},
            {"type": "new_q4h_asked", "question": question},
        ],
    )

    result = CliRunner().invoke(cli, ["replay", log, "--dialogs", dialogs])

    assert result.exit_code == 1
    assert "protocol_violation" in result.output
