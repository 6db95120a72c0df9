"""Q4H (questions for human) models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

from pydantic import AliasChoices, Field

from dialogsync.models.dialogs import DialogIdent, WireModel, dialog_key


class CallSiteRef(WireModel):
    """Where in the owning dialog's transcript the question was asked."""

    course: int
    message_index: int = 0


class Q4HQuestion(WireModel):
    """One outstanding ask-a-human request.

    ``id`` is globally unique and never reused. The owning dialog is fixed for
    the lifetime of the question.
    """

    id: str
    root_id: str
    self_id: str
    agent_id: str = ""
    task_doc_path: str = ""
    kind: Literal["generic", "keep_going_budget_exhausted", "context_health_critical"] = "generic"
    head_line: str = ""
    tellask_content: str = Field(
        default="",
        validation_alias=AliasChoices("tellaskContent", "bodyContent", "tellask_content"),
    )
    mention_list: tuple[str, ...] = ()
    asked_at: str = ""
    call_site_ref: CallSiteRef
    call_id: Optional[str] = None
    remaining_call_ids: tuple[str, ...] = ()

    @property
    def dialog(self) -> DialogIdent:
        return DialogIdent(root_id=self.root_id, self_id=self.self_id)

    @property
    def dialog_key(self) -> str:
        return dialog_key(self.root_id, self.self_id)

    @property
    def course(self) -> int:
        return self.call_site_ref.course

    @property
    def message_index(self) -> int:
        return self.call_site_ref.message_index


@dataclass
class Q4HDialogGroup:
    """Questions owned by one dialog, for grouped presentation."""

    root_id: str
    self_id: str
    agent_id: str
    task_doc_path: str
    questions: list[Q4HQuestion] = field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return self.self_id == self.root_id
