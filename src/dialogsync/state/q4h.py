"""Global pending-question (Q4H) set.

The held list keeps questions whose dialog has left ``running`` so that a
revived dialog gets its questions back immediately; :meth:`Q4HReconciler.visible`
filters them out for display.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence

from dialogsync.errors import ProtocolViolation, ReconciliationError
from dialogsync.models.dialogs import DialogStatus
from dialogsync.models.questions import Q4HDialogGroup, Q4HQuestion
from dialogsync.observability.logging import get_logger

logger = get_logger(__name__)

__all__ = ["Q4HReconciler", "StatusResolver", "group_by_dialog"]

StatusResolver = Callable[[str, str], "DialogStatus | None"]

_HIDDEN_STATUSES = frozenset({DialogStatus.COMPLETED, DialogStatus.ARCHIVED})


def _first_duplicate(questions: Iterable[Q4HQuestion]) -> str | None:
    seen: set[str] = set()
    for question in questions:
        if question.id in seen:
            return question.id
        seen.add(question.id)
    return None


def group_by_dialog(questions: Sequence[Q4HQuestion]) -> list[Q4HDialogGroup]:
    """Group questions by owning dialog, root-owned groups first.

    Within each half, groups and questions keep first-seen order.
    """
    groups: dict[tuple[str, str], Q4HDialogGroup] = {}
    for question in questions:
        key = (question.root_id, question.self_id)
        group = groups.get(key)
        if group is None:
            group = Q4HDialogGroup(
                root_id=question.root_id,
                self_id=question.self_id,
                agent_id=question.agent_id,
                task_doc_path=question.task_doc_path,
            )
            groups[key] = group
        group.questions.append(question)
    ordered = list(groups.values())
    return [g for g in ordered if g.is_root] + [g for g in ordered if not g.is_root]


class Q4HReconciler:
    """Merges incremental Q4H events and snapshots into one held list.

    ``status_of`` resolves a dialog's status from the registry; ``None`` means
    the status is unknown locally.
    """

    def __init__(self, status_of: StatusResolver) -> None:
        self._status_of = status_of
        self._held: list[Q4HQuestion] = []
        self.revision = 0
        self.snapshots_applied = 0

    def __len__(self) -> int:
        return len(self._held)

    def __contains__(self, question_id: object) -> bool:
        return any(q.id == question_id for q in self._held)

    def held(self) -> tuple[Q4HQuestion, ...]:
        return tuple(self._held)

    def get(self, question_id: str) -> Q4HQuestion | None:
        for question in self._held:
            if question.id == question_id:
                return question
        return None

    def _set(self, questions: list[Q4HQuestion]) -> None:
        self._held = questions
        self.revision += 1

    def apply_asked(self, question: Q4HQuestion) -> None:
        if question.id in self:
            raise ProtocolViolation(f"Duplicate Q4H question id {question.id!r}")
        self._set([*self._held, question])
        logger.info("q4h_question_added", question_id=question.id, dialog=question.dialog_key)

    def apply_answered(self, question_id: str) -> bool:
        remaining = [q for q in self._held if q.id != question_id]
        if len(remaining) == len(self._held):
            return False
        self._set(remaining)
        logger.info("q4h_question_removed", question_id=question_id)
        return True

    def apply_snapshot(self, questions: Sequence[Q4HQuestion]) -> None:
        """Three-way merge of a full snapshot into the held list.

        The snapshot only covers running dialogs, so a held question missing from
        it is pruned only when its dialog is known to be running.
        """
        duplicate = _first_duplicate(questions)
        if duplicate is not None:
            raise ProtocolViolation(f"Q4H snapshot repeats question id {duplicate!r}")

        incoming = {q.id: q for q in questions}
        merged: list[Q4HQuestion] = []
        pruned = 0
        for existing in self._held:
            fresh = incoming.pop(existing.id, None)
            if fresh is not None:
                merged.append(fresh)
                continue
            if self._status_of(existing.root_id, existing.self_id) == DialogStatus.RUNNING:
                pruned += 1
                continue
            merged.append(existing)
        merged.extend(incoming.values())

        duplicate = _first_duplicate(merged)
        if duplicate is not None:
            raise ReconciliationError(f"Q4H merge produced duplicate question id {duplicate!r}")

        self._set(merged)
        self.snapshots_applied += 1
        logger.info(
            "q4h_snapshot_applied",
            held=len(merged),
            incoming=len(questions),
            pruned=pruned,
        )

    def visible(self) -> tuple[Q4HQuestion, ...]:
        """Held questions whose dialog is not completed or archived."""
        return tuple(
            q for q in self._held if self._status_of(q.root_id, q.self_id) not in _HIDDEN_STATUSES
        )

    def visible_groups(self) -> list[Q4HDialogGroup]:
        return group_by_dialog(self.visible())
