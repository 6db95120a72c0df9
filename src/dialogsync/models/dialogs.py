"""Dialog identity, status and run-state models."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for every wire shape: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DialogStatus(str, Enum):
    """Persistence bucket of a dialog. Subdialogs share their root's bucket."""

    RUNNING = "running"
    COMPLETED = "completed"
    ARCHIVED = "archived"


def dialog_key(root_id: str, self_id: str) -> str:
    return root_id if self_id == root_id else f"{root_id}#{self_id}"


class DialogIdent(WireModel):
    self_id: str
    root_id: str

    @property
    def key(self) -> str:
        return dialog_key(self.root_id, self.self_id)

    @property
    def is_subdialog(self) -> bool:
        return self.self_id != self.root_id


# --- Run state ---------------------------------------------------------------

BlockedReasonKind = Literal[
    "needs_human_input",
    "waiting_for_subdialogs",
    "needs_human_input_and_subdialogs",
]

HUMAN_INPUT_BLOCKS = frozenset({"needs_human_input", "needs_human_input_and_subdialogs"})


class InterruptionReason(WireModel):
    kind: Literal["user_stop", "emergency_stop", "server_restart", "system_stop"]
    detail: Optional[str] = None


class BlockedReason(WireModel):
    kind: BlockedReasonKind


class Proceeding(WireModel):
    kind: Literal["proceeding"] = "proceeding"


class ProceedingStopRequested(WireModel):
    kind: Literal["proceeding_stop_requested"] = "proceeding_stop_requested"
    reason: Optional[Literal["user_stop", "emergency_stop"]] = None


class Interrupted(WireModel):
    kind: Literal["interrupted"] = "interrupted"
    reason: Optional[InterruptionReason] = None


class Blocked(WireModel):
    kind: Literal["blocked"] = "blocked"
    reason: BlockedReason

    @property
    def needs_human_input(self) -> bool:
        return self.reason.kind in HUMAN_INPUT_BLOCKS


class IdleWaitingUser(WireModel):
    kind: Literal["idle_waiting_user"] = "idle_waiting_user"


class Terminal(WireModel):
    kind: Literal["terminal"] = "terminal"
    status: Literal["completed", "archived"]


class Dead(WireModel):
    kind: Literal["dead"] = "dead"


RunState = Annotated[
    Union[
        Proceeding,
        ProceedingStopRequested,
        Interrupted,
        Blocked,
        IdleWaitingUser,
        Terminal,
        Dead,
    ],
    Field(discriminator="kind"),
]

RUN_STATE_ADAPTER: TypeAdapter[RunState] = TypeAdapter(RunState)


def parse_run_state(raw: Any) -> RunState:
    return RUN_STATE_ADAPTER.validate_python(raw)


def is_stoppable(run_state: RunState | None) -> bool:
    return isinstance(run_state, (Proceeding, ProceedingStopRequested))


def is_resumable(run_state: RunState | None) -> bool:
    return isinstance(run_state, Interrupted)


def needs_human_input(run_state: RunState | None) -> bool:
    return isinstance(run_state, Blocked) and run_state.needs_human_input


# --- Dialog node -------------------------------------------------------------


class DialogNode(WireModel):
    """One conversation thread as returned by list / hierarchy fetches.

    Root entries on the wire may omit ``selfId``; it then defaults to ``rootId``.
    """

    root_id: str
    self_id: str
    agent_id: str = ""
    task_doc_path: str = ""
    status: DialogStatus = DialogStatus.RUNNING
    current_course: int = Field(
        default=0,
        validation_alias=AliasChoices("currentCourse", "currentRound", "current_course"),
    )
    created_at: str = ""
    last_modified: str = ""
    supdialog_id: Optional[str] = None
    subdialog_count: Optional[int] = None
    run_state: Optional[RunState] = None
    tellask_session: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _default_self_id(cls, data: Any) -> Any:
        if isinstance(data, dict):
            self_id = data.get("selfId") or data.get("self_id")
            root_id = data.get("rootId") or data.get("root_id")
            if not self_id and root_id:
                data = {**data, "selfId": root_id}
                data.pop("self_id", None)
        return data

    @property
    def is_root(self) -> bool:
        return self.self_id == self.root_id

    @property
    def key(self) -> str:
        return dialog_key(self.root_id, self.self_id)

    @property
    def ident(self) -> DialogIdent:
        return DialogIdent(root_id=self.root_id, self_id=self.self_id)


class DialogHierarchy(WireModel):
    """Root plus its subdialogs, as returned by the hierarchy fetch."""

    root: DialogNode
    subdialogs: tuple[DialogNode, ...] = ()
