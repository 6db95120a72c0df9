"""View-side collaborators and the explicit view state the router reads."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional, Protocol

from dialogsync.models.dialogs import DialogIdent, RunState
from dialogsync.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScrollRequest:
    """Ask a view to bring a transcript position into sight."""

    dialog: DialogIdent
    course: int
    message_index: Optional[int] = None
    call_id: Optional[str] = None
    genseq: Optional[int] = None
    question_id: Optional[str] = None


class DialogView(Protocol):
    """A rendering surface for one dialog transcript."""

    def handle_event(self, message: Any) -> None: ...

    def reset_for_course(self, course: int) -> None: ...

    def set_input_enabled(self, enabled: bool) -> None: ...

    def set_run_state(self, run_state: RunState | None) -> None: ...

    def update_dialog_context(self, dialog: DialogIdent) -> None: ...

    def scroll_to(self, request: ScrollRequest) -> None: ...


@dataclass
class ViewState:
    """What the main view currently shows, plus the toolbar-level state.

    The router decides delivery from this state alone, never from a rendering
    surface.
    """

    current: DialogIdent | None = None
    current_course: int = 0
    total_courses: int = 0
    input_enabled: bool = False
    disable_diligence_push: bool = False
    diligence_push_max: int | None = None
    context_health: dict[str, dict[str, Any]] = field(default_factory=dict)
    reminders: tuple[dict[str, Any], ...] = ()
    problems: tuple[dict[str, Any], ...] = ()
    problems_version: int = 0
    ui_language: str | None = None
    server_work_language: str | None = None

    @property
    def showing_subdialog(self) -> bool:
        return self.current is not None and self.current.is_subdialog

    def is_current(self, dialog: DialogIdent | None) -> bool:
        return (
            dialog is not None
            and self.current is not None
            and dialog.root_id == self.current.root_id
            and dialog.self_id == self.current.self_id
        )

    def current_context_health(self) -> dict[str, Any] | None:
        if self.current is None:
            return None
        return self.context_health.get(self.current.key)


class RouteKind(str, Enum):
    MAIN = "main"
    STANDALONE = "standalone"
    NONE = "none"


@dataclass(frozen=True)
class RouteTarget:
    kind: RouteKind
    self_id: str | None = None


MAIN_VIEW = RouteTarget(RouteKind.MAIN)
NO_VIEW = RouteTarget(RouteKind.NONE)


def resolve_view(
    target: DialogIdent | None,
    view_state: ViewState,
    standalone_ids: Iterable[str],
) -> RouteTarget:
    """Pick the view that receives a dialog-scoped message.

    1. no target: main view
    2. main view shows the target dialog: main view
    3. target has a standalone subdialog view: that view
    4. otherwise the main view only while it shows nothing. A main view
       showing another dialog gets nothing (registry and Q4H effects still
       apply).
    """
    if target is None:
        return MAIN_VIEW
    if view_state.is_current(target):
        return MAIN_VIEW
    if target.self_id in set(standalone_ids):
        return RouteTarget(RouteKind.STANDALONE, target.self_id)
    if view_state.current is not None:
        return NO_VIEW
    return MAIN_VIEW


class BufferedDialogView:
    """In-memory view that records what it was asked to show.

    Backs the offline replay command and serves as the default main view when
    nothing renders.
    """

    def __init__(self, name: str = "main") -> None:
        self.name = name
        self.dialog: DialogIdent | None = None
        self.course: int | None = None
        self.events: list[Any] = []
        self.input_enabled = False
        self.run_state: RunState | None = None
        self.scroll_requests: list[ScrollRequest] = []

    def handle_event(self, message: Any) -> None:
        self.events.append(message)

    def reset_for_course(self, course: int) -> None:
        self.course = course
        self.events = []

    def set_input_enabled(self, enabled: bool) -> None:
        self.input_enabled = enabled

    def set_run_state(self, run_state: RunState | None) -> None:
        self.run_state = run_state

    def update_dialog_context(self, dialog: DialogIdent) -> None:
        if self.dialog != dialog:
            self.events = []
        self.dialog = dialog

    def scroll_to(self, request: ScrollRequest) -> None:
        logger.debug("view_scroll_requested", view=self.name, course=request.course)
        self.scroll_requests.append(request)
