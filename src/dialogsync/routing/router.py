"""Event router: applies each inbound message to local state and views.

Messages are handled one at a time in delivery order. State mutations run
synchronously inside :meth:`EventRouter.dispatch`; fetches the router needs
(root-list refresh) are handed to a callback that runs them in the background.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Mapping

from dialogsync.errors import ProtocolViolation
from dialogsync.models.dialogs import DialogIdent, needs_human_input
from dialogsync.models.messages import (
    ContextHealthChanged,
    CourseUpdate,
    DialogReady,
    DialogsCreated,
    DialogsDeleted,
    DialogsMoved,
    DiligenceBudget,
    DiligencePushUpdated,
    FullReminders,
    GetQ4HState,
    InboundMessage,
    NewQ4HAsked,
    OutboundMessage,
    ProblemsSnapshot,
    Q4HAnswered,
    Q4HStateResponse,
    RunStateChanged,
    RunStateMarker,
    ServerError,
    SubdialogCreated,
    TranscriptEvent,
    UiLanguageSet,
    Welcome,
)
from dialogsync.observability.logging import dialog_key_var, get_logger
from dialogsync.routing.views import (
    DialogView,
    RouteKind,
    RouteTarget,
    ViewState,
    resolve_view,
)
from dialogsync.services.notifications import Notifier, ToastKind
from dialogsync.state.q4h import Q4HReconciler
from dialogsync.state.registry import DialogRegistry
from dialogsync.state.run_control import RefreshReason, RunControlAggregator

logger = get_logger(__name__)


class MessageScope(str, Enum):
    GLOBAL = "global"
    DIALOG = "dialog"


# Q4H events may carry the dialog they were delivered through, but they act on
# the global question set.
_GLOBAL_TYPES = (
    Welcome,
    ServerError,
    UiLanguageSet,
    ProblemsSnapshot,
    Q4HStateResponse,
    DialogsMoved,
    DialogsCreated,
    DialogsDeleted,
    NewQ4HAsked,
    Q4HAnswered,
)


def dialog_identity(message: InboundMessage) -> DialogIdent | None:
    dialog = getattr(message, "dialog", None)
    if dialog is not None:
        return dialog
    return getattr(message, "sub_dialog", None)


def classify(message: InboundMessage) -> MessageScope:
    if isinstance(message, _GLOBAL_TYPES) or dialog_identity(message) is None:
        return MessageScope.GLOBAL
    return MessageScope.DIALOG


class EventRouter:
    def __init__(
        self,
        *,
        registry: DialogRegistry,
        q4h: Q4HReconciler,
        run_control: RunControlAggregator,
        view_state: ViewState,
        main_view: DialogView,
        standalone_views: Mapping[str, DialogView],
        send: Callable[[OutboundMessage], None],
        notifier: Notifier,
        request_root_refresh: Callable[[str], None],
    ) -> None:
        self.registry = registry
        self.q4h = q4h
        self.run_control = run_control
        self.view_state = view_state
        self.main_view = main_view
        self._standalone = standalone_views
        self._send = send
        self._notifier = notifier
        self._request_root_refresh = request_root_refresh

    def view_for(self, target: RouteTarget) -> DialogView | None:
        if target.kind == RouteKind.MAIN:
            return self.main_view
        if target.kind == RouteKind.STANDALONE and target.self_id is not None:
            return self._standalone.get(target.self_id)
        return None

    def route(self, ident: DialogIdent | None) -> RouteTarget:
        return resolve_view(
            ident,
            self.view_state,
            self._standalone.keys(),
        )

    def dispatch(self, message: InboundMessage) -> RouteTarget | None:
        """Apply one message. Returns where it was delivered, if anywhere."""
        ident = dialog_identity(message)
        token = dialog_key_var.set(ident.key if ident is not None else "")
        try:
            if ident is None or classify(message) == MessageScope.GLOBAL:
                self._handle_global(message)
                return None
            return self._handle_dialog(message, ident)
        finally:
            dialog_key_var.reset(token)

    # --- global --------------------------------------------------------------

    def _handle_global(self, message: InboundMessage) -> None:
        match message:
            case Welcome():
                self.view_state.server_work_language = message.server_work_language
                logger.info("stream_welcome", message=message.message)
            case ServerError():
                logger.error("server_error", message=message.message)
                self._notifier.notify(ToastKind.ERROR, message.message)
            case UiLanguageSet():
                self.view_state.ui_language = message.ui_language
            case ProblemsSnapshot():
                self.view_state.problems = message.problems
                self.view_state.problems_version = message.version
            case Q4HStateResponse():
                self.q4h.apply_snapshot(message.questions)
            case NewQ4HAsked():
                self.q4h.apply_asked(message.question)
            case Q4HAnswered():
                self.q4h.apply_answered(message.question_id)
            case DialogsMoved():
                self.registry.move_roots(message.moved_root_ids, message.to_status)
                self._request_root_refresh(message.type)
            case DialogsCreated():
                self._request_root_refresh(message.type)
            case DialogsDeleted():
                deleted = set(message.deleted_root_ids)
                self.registry.remove_roots(deleted)
                current = self.view_state.current
                if current is not None and current.root_id in deleted:
                    self.view_state.current = None
                    self.view_state.input_enabled = False
                    self.main_view.set_input_enabled(False)
                self._request_root_refresh(message.type)
            case _:
                logger.warning("message_without_dialog_dropped", message_type=message.type)

    # --- dialog-scoped -------------------------------------------------------

    def _deliver(self, message: InboundMessage, ident: DialogIdent) -> RouteTarget:
        target = self.route(ident)
        view = self.view_for(target)
        if view is not None:
            view.handle_event(message)
        else:
            logger.debug("message_not_delivered", message_type=message.type, route=target.kind.value)
        return target

    def _bump(self, ident: DialogIdent, timestamp: str) -> None:
        self.registry.bump_last_modified(ident.root_id, ident.self_id, timestamp)

    def _handle_dialog(self, message: InboundMessage, ident: DialogIdent) -> RouteTarget | None:
        match message:
            case DialogReady():
                self.view_state.current = ident
                self.view_state.disable_diligence_push = message.disable_diligence_push
                self.view_state.diligence_push_max = message.diligence_push_max
                self.view_state.input_enabled = True
                self.main_view.update_dialog_context(ident)
                self.main_view.set_input_enabled(True)
                node = self.registry.get(ident.root_id, ident.self_id)
                self.main_view.set_run_state(node.run_state if node is not None else None)
                return RouteTarget(RouteKind.MAIN)

            case DiligencePushUpdated():
                if self.view_state.is_current(ident):
                    self.view_state.disable_diligence_push = message.disable_diligence_push
                return None

            case DiligenceBudget():
                if self.view_state.is_current(ident):
                    self.view_state.diligence_push_max = message.remaining_count
                    self.view_state.disable_diligence_push = message.disable_diligence_push
                return None

            case CourseUpdate():
                target = self.route(ident)
                view = self.view_for(target)
                latest = message.course == message.total_courses
                if target.kind == RouteKind.MAIN:
                    self.view_state.current_course = message.course
                    self.view_state.total_courses = message.total_courses
                    self.view_state.input_enabled = latest
                if view is not None:
                    view.reset_for_course(message.course)
                    view.set_input_enabled(latest)
                self._bump(ident, message.timestamp)
                return target

            case SubdialogCreated():
                node = message.sub_dialog_node
                sub = message.sub_dialog
                if (node.root_id, node.self_id) != (sub.root_id, sub.self_id):
                    raise ProtocolViolation(
                        f"subdialog_created_evt node {node.key} does not match subDialog {sub.key}"
                    )
                if sub.root_id != message.parent_dialog.root_id:
                    raise ProtocolViolation(
                        f"subdialog_created_evt subDialog {sub.key} is not under "
                        f"parent root {message.parent_dialog.root_id}"
                    )
                self.registry.upsert_subdialog(node)
                logger.info("subdialog_created", root_id=sub.root_id, self_id=sub.self_id)
                target = self._deliver(message, ident)
                self.registry.bump_last_modified(sub.root_id, sub.root_id, message.timestamp)
                return target

            case RunStateChanged():
                self.registry.patch_run_state(ident.root_id, ident.self_id, message.run_state)
                self.run_control.recompute(self.registry)
                if needs_human_input(message.run_state):
                    self._send(GetQ4HState())
                if self.view_state.is_current(ident):
                    self.main_view.set_run_state(message.run_state)
                return self._deliver(message, ident)

            case RunStateMarker():
                reason = (
                    RefreshReason.RUN_STATE_MARKER_INTERRUPTED
                    if message.kind == "interrupted"
                    else RefreshReason.RUN_STATE_MARKER_RESUMED
                )
                self.run_control.schedule_refresh(reason)
                return self._deliver(message, ident)

            case ContextHealthChanged():
                self.view_state.context_health[ident.key] = dict(message.context_health)
                self._bump(ident, message.timestamp)
                return None

            case FullReminders():
                self.view_state.reminders = message.reminders
                return None

            case TranscriptEvent():
                target = self._deliver(message, ident)
                self._bump(ident, message.timestamp)
                return target

            case _:
                logger.warning("message_unhandled", message_type=message.type)
                return None
