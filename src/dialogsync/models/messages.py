"""Inbound and outbound stream message shapes.

Inbound messages form a closed union keyed by ``type``. Anything that does not
validate against one of these shapes is rejected by :func:`parse_message` with
:class:`~dialogsync.errors.InvalidMessage` before it reaches the router.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import ConfigDict, Field, TypeAdapter, ValidationError

from dialogsync.errors import InvalidMessage
from dialogsync.models.dialogs import (
    DialogIdent,
    DialogNode,
    DialogStatus,
    InterruptionReason,
    RunState,
    WireModel,
)
from dialogsync.models.questions import Q4HQuestion

__all__ = [
    "InboundMessage",
    "OutboundMessage",
    "TRANSCRIPT_EVENT_TYPES",
    "parse_message",
]


# --- Global messages ---------------------------------------------------------


class Welcome(WireModel):
    type: Literal["welcome"]
    message: str = ""
    server_work_language: Optional[str] = None
    supported_language_codes: tuple[str, ...] = ()
    timestamp: str = ""


class ServerError(WireModel):
    type: Literal["error"]
    message: str


class UiLanguageSet(WireModel):
    type: Literal["ui_language_set"]
    ui_language: str


class ProblemsSnapshot(WireModel):
    type: Literal["problems_snapshot"]
    version: int = 0
    problems: tuple[dict[str, Any], ...] = ()


class Q4HStateResponse(WireModel):
    type: Literal["q4h_state_response"]
    questions: tuple[Q4HQuestion, ...] = ()


class DialogsScope(WireModel):
    kind: Literal["root", "task"]
    root_id: Optional[str] = None
    task_doc_path: Optional[str] = None


class DialogsMoved(WireModel):
    type: Literal["dialogs_moved"]
    scope: DialogsScope
    from_status: DialogStatus
    to_status: DialogStatus
    moved_root_ids: tuple[str, ...] = ()
    timestamp: str = ""


class DialogsCreated(WireModel):
    type: Literal["dialogs_created"]
    scope: DialogsScope
    status: DialogStatus
    created_root_ids: tuple[str, ...] = ()
    timestamp: str = ""


class DialogsDeleted(WireModel):
    type: Literal["dialogs_deleted"]
    scope: DialogsScope
    from_status: DialogStatus
    deleted_root_ids: tuple[str, ...] = ()
    timestamp: str = ""


# --- Dialog-scoped messages --------------------------------------------------


class DialogReady(WireModel):
    type: Literal["dialog_ready"]
    dialog: DialogIdent
    agent_id: str = ""
    task_doc_path: str = ""
    supdialog_id: Optional[str] = None
    tellask_session: Optional[str] = None
    disable_diligence_push: bool = False
    diligence_push_max: Optional[int] = None
    diligence_push_remaining_budget: Optional[int] = None


class DiligencePushUpdated(WireModel):
    type: Literal["diligence_push_updated"]
    dialog: DialogIdent
    disable_diligence_push: bool
    timestamp: str = ""


class DiligenceBudget(WireModel):
    type: Literal["diligence_budget_evt"]
    dialog: DialogIdent
    max_inject_count: int = 0
    injected_count: int = 0
    remaining_count: int = 0
    disable_diligence_push: bool = False
    timestamp: str = ""


class CourseUpdate(WireModel):
    type: Literal["course_update"]
    dialog: DialogIdent
    course: int
    total_courses: int
    timestamp: str = ""


class SubdialogCreated(WireModel):
    type: Literal["subdialog_created_evt"]
    dialog: Optional[DialogIdent] = None
    parent_dialog: DialogIdent
    sub_dialog: DialogIdent
    sub_dialog_node: DialogNode
    course: int = 0
    target_agent_id: str = ""
    mention_list: tuple[str, ...] = ()
    tellask_content: str = ""
    genseq: Optional[int] = None
    timestamp: str = ""


class RunStateChanged(WireModel):
    type: Literal["dlg_run_state_evt"]
    dialog: DialogIdent
    run_state: RunState
    timestamp: str = ""


class RunStateMarker(WireModel):
    type: Literal["dlg_run_state_marker_evt"]
    dialog: DialogIdent
    kind: Literal["interrupted", "resumed"]
    reason: Optional[InterruptionReason] = None
    timestamp: str = ""


class NewQ4HAsked(WireModel):
    type: Literal["new_q4h_asked"]
    dialog: Optional[DialogIdent] = None
    question: Q4HQuestion
    timestamp: str = ""


class Q4HAnswered(WireModel):
    type: Literal["q4h_answered"]
    dialog: Optional[DialogIdent] = None
    question_id: str
    self_id: str = ""
    timestamp: str = ""


class ContextHealthChanged(WireModel):
    type: Literal["context_health_evt"]
    dialog: DialogIdent
    course: int = 0
    genseq: int = 0
    context_health: dict[str, Any] = Field(default_factory=dict)
    timestamp: str = ""


class FullReminders(WireModel):
    type: Literal["full_reminders_update"]
    dialog: DialogIdent
    reminders: tuple[dict[str, Any], ...] = ()
    timestamp: str = ""


TRANSCRIPT_EVENT_TYPES = (
    "dlg_touched_evt",
    "generating_start_evt",
    "generating_finish_evt",
    "thinking_start_evt",
    "thinking_chunk_evt",
    "thinking_finish_evt",
    "saying_start_evt",
    "saying_finish_evt",
    "markdown_start_evt",
    "markdown_chunk_evt",
    "markdown_finish_evt",
    "func_call_requested_evt",
    "func_result_evt",
    "web_search_call_evt",
    "teammate_call_start_evt",
    "teammate_call_response_evt",
    "teammate_call_anchor_evt",
    "teammate_response_evt",
    "end_of_user_saying_evt",
    "stream_error_evt",
    "tool_call_response_evt",
)


class TranscriptEvent(WireModel):
    """Transcript stream event forwarded to a dialog view as-is.

    Only the addressing fields are validated; the payload rides along as extras.
    """

    model_config = ConfigDict(extra="allow")

    type: Literal[TRANSCRIPT_EVENT_TYPES]  # type: ignore[valid-type]
    dialog: DialogIdent
    course: Optional[int] = None
    genseq: Optional[int] = None
    timestamp: str = ""


InboundMessage = Annotated[
    Union[
        Welcome,
        ServerError,
        UiLanguageSet,
        ProblemsSnapshot,
        Q4HStateResponse,
        DialogsMoved,
        DialogsCreated,
        DialogsDeleted,
        DialogReady,
        DiligencePushUpdated,
        DiligenceBudget,
        CourseUpdate,
        SubdialogCreated,
        RunStateChanged,
        RunStateMarker,
        NewQ4HAsked,
        Q4HAnswered,
        ContextHealthChanged,
        FullReminders,
        TranscriptEvent,
    ],
    Field(discriminator="type"),
]

INBOUND_ADAPTER: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)


def parse_message(raw: Any) -> InboundMessage:
    """Validate one decoded stream message against the closed message union."""
    if isinstance(raw, WireModel):
        return raw  # type: ignore[return-value]
    if not isinstance(raw, Mapping):
        raise InvalidMessage(f"Message is not an object: {type(raw).__name__}")
    message_type = raw.get("type")
    if not isinstance(message_type, str) or not message_type:
        raise InvalidMessage("Message has no 'type' discriminator")
    try:
        return INBOUND_ADAPTER.validate_python(dict(raw))
    except ValidationError as exc:
        raise InvalidMessage(
            f"Message '{message_type}' failed validation: {exc.error_count()} error(s)",
            message_type=message_type,
        ) from exc


# --- Outbound control messages -----------------------------------------------


class GetQ4HState(WireModel):
    type: Literal["get_q4h_state"] = "get_q4h_state"


class GetProblems(WireModel):
    type: Literal["get_problems"] = "get_problems"


class EmergencyStop(WireModel):
    type: Literal["emergency_stop"] = "emergency_stop"


class ResumeAll(WireModel):
    type: Literal["resume_all"] = "resume_all"


class DisplayDialog(WireModel):
    type: Literal["display_dialog"] = "display_dialog"
    dialog: DialogIdent


class DisplayCourse(WireModel):
    type: Literal["display_course"] = "display_course"
    dialog: DialogIdent
    course: int


class SetDiligencePush(WireModel):
    type: Literal["set_diligence_push"] = "set_diligence_push"
    dialog: DialogIdent
    disable_diligence_push: bool


class RefillDiligencePushBudget(WireModel):
    type: Literal["refill_diligence_push_budget"] = "refill_diligence_push_budget"
    dialog: DialogIdent


OutboundMessage = Union[
    GetQ4HState,
    GetProblems,
    EmergencyStop,
    ResumeAll,
    DisplayDialog,
    DisplayCourse,
    SetDiligencePush,
    RefillDiligencePushBudget,
]
