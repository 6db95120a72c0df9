"""Unit tests for Q4H reconciliation."""

from __future__ import annotations

import pytest

from dialogsync.errors import ProtocolViolation
from dialogsync.models.dialogs import DialogStatus
from dialogsync.state.q4h import Q4HReconciler, group_by_dialog
from dialogsync.state.registry import DialogRegistry


@pytest.fixture
def registry(make_root, make_sub) -> DialogRegistry:
    reg = DialogRegistry()
    reg.replace_roots(
        [
            make_root("R1", subdialog_count=1),
            make_root("R2", status=DialogStatus.COMPLETED),
        ]
    )
    reg.merge_subdialogs("R1", [make_sub("R1", "S1")])
    return reg


@pytest.fixture
def reconciler(registry) -> Q4HReconciler:
    return Q4HReconciler(registry.resolve_status)


def test_apply_asked_rejects_duplicate_id(reconciler, make_question) -> None:
    reconciler.apply_asked(make_question("q-1"))
    with pytest.raises(ProtocolViolation):
        reconciler.apply_asked(make_question("q-1", head_line="changed"))
    assert len(reconciler) == 1


def test_apply_answered_is_noop_for_unknown_id(reconciler, make_question) -> None:
    reconciler.apply_asked(make_question("q-1"))
    revision = reconciler.revision

    assert reconciler.apply_answered("q-404") is False
    assert reconciler.revision == revision
    assert reconciler.apply_answered("q-1") is True
    assert len(reconciler) == 0


def test_snapshot_rejects_duplicate_incoming_ids(reconciler, make_question) -> None:
    with pytest.raises(ProtocolViolation):
        reconciler.apply_snapshot([make_question("q-1"), make_question("q-1")])
    assert len(reconciler) == 0


def test_snapshot_incoming_copy_wins_and_keeps_position(reconciler, make_question) -> None:
    reconciler.apply_asked(make_question("q-1", head_line="old"))
    reconciler.apply_asked(make_question("q-2"))

    reconciler.apply_snapshot(
        [make_question("q-3"), make_question("q-2"), make_question("q-1", head_line="new")]
    )

    assert [q.id for q in reconciler.held()] == ["q-1", "q-2", "q-3"]
    assert reconciler.get("q-1").head_line == "new"


def test_snapshot_prunes_questions_of_running_dialogs(reconciler, make_question) -> None:
    reconciler.apply_asked(make_question("q-root", "R1"))
    reconciler.apply_asked(make_question("q-sub", "R1", "S1"))

    reconciler.apply_snapshot([])

    assert len(reconciler) == 0


def test_snapshot_keeps_questions_of_non_running_or_unknown_dialogs(
    reconciler, make_question
) -> None:
    reconciler.apply_asked(make_question("q-done", "R2"))
    reconciler.apply_asked(make_question("q-unknown", "R9", "S9"))

    reconciler.apply_snapshot([make_question("q-new", "R1")])

    assert [q.id for q in reconciler.held()] == ["q-done", "q-unknown", "q-new"]


def test_visible_hides_completed_and_archived(registry, reconciler, make_question) -> None:
    reconciler.apply_asked(make_question("q-1", "R1", "S1"))
    reconciler.apply_asked(make_question("q-2", "R2"))
    reconciler.apply_asked(make_question("q-3", "R9"))

    assert [q.id for q in reconciler.visible()] == ["q-1", "q-3"]

    registry.move_roots(["R1"], DialogStatus.ARCHIVED)
    assert [q.id for q in reconciler.visible()] == ["q-3"]

    registry.move_roots(["R1"], DialogStatus.RUNNING)
    assert [q.id for q in reconciler.visible()] == ["q-1", "q-3"]


def test_group_by_dialog_puts_root_groups_first(make_question) -> None:
    questions = [
        make_question("q-1", "R1", "S1"),
        make_question("q-2", "R2"),
        make_question("q-3", "R1", "S1"),
        make_question("q-4", "R1"),
    ]

    groups = group_by_dialog(questions)

    assert [(g.root_id, g.self_id) for g in groups] == [("R2", "R2"), ("R1", "R1"), ("R1", "S1")]
    assert [q.id for q in groups[2].questions] == ["q-1", "q-3"]
    assert groups[0].is_root and not groups[2].is_root


def test_visible_groups_count_matches_visible(reconciler, make_question) -> None:
    reconciler.apply_asked(make_question("q-1", "R1", "S1"))
    reconciler.apply_asked(make_question("q-2", "R1"))
    reconciler.apply_asked(make_question("q-3", "R2"))

    groups = reconciler.visible_groups()

    assert sum(len(g.questions) for g in groups) == len(reconciler.visible()) == 2
