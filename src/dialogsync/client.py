"""Sync client: wires transport, fetches, state and routing together.

One client owns one stream subscription. Messages are handled strictly in
order; fetches triggered while handling them run as tracked background tasks
so the stream keeps flowing. :meth:`SyncClient.teardown` cancels everything the
client started.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Coroutine

from dialogsync.deeplink import DeepLinkIntent, DeepLinkResolver, parse_deep_link
from dialogsync.errors import (
    AuthRejected,
    DataIntegrityError,
    FetchFailed,
    InvalidDeepLink,
    InvalidMessage,
    ProtocolViolation,
)
from dialogsync.models.dialogs import DialogNode
from dialogsync.models.messages import (
    DisplayCourse,
    DisplayDialog,
    EmergencyStop,
    GetProblems,
    GetQ4HState,
    OutboundMessage,
    RefillDiligencePushBudget,
    ResumeAll,
    SetDiligencePush,
    parse_message,
)
from dialogsync.models.questions import Q4HDialogGroup
from dialogsync.observability.logging import get_logger
from dialogsync.resilience.retry import AsyncRetryConfig, fetch_with_retry
from dialogsync.resilience.scheduler import AsyncioScheduler, Scheduler
from dialogsync.routing.router import EventRouter
from dialogsync.routing.views import BufferedDialogView, DialogView, ScrollRequest, ViewState
from dialogsync.services.api import DialogApi
from dialogsync.services.notifications import LoggingNotifier, Notifier, ToastKind
from dialogsync.services.transport import ConnectionState, Subscription, Transport
from dialogsync.state.q4h import Q4HReconciler
from dialogsync.state.registry import DialogRegistry
from dialogsync.state.run_control import (
    DEFAULT_DEBOUNCE_S,
    RefreshReason,
    RunControlAggregator,
    RunControlCounts,
)

logger = get_logger(__name__)

AuthHandler = Callable[[AuthRejected], "Awaitable[None] | None"]


class SyncClient:
    """Keeps a local, continuously updated view of every dialog in a workspace."""

    def __init__(
        self,
        *,
        transport: Transport,
        api: DialogApi,
        notifier: Notifier | None = None,
        main_view: DialogView | None = None,
        scheduler: Scheduler | None = None,
        deep_link: str | DeepLinkIntent | None = None,
        auth_handler: AuthHandler | None = None,
        debounce_s: float = DEFAULT_DEBOUNCE_S,
        retry: AsyncRetryConfig | None = None,
    ) -> None:
        self.transport = transport
        self.api = api
        self.notifier: Notifier = notifier or LoggingNotifier()
        self.main_view: DialogView = main_view or BufferedDialogView()
        self._owns_scheduler = scheduler is None
        self.scheduler: Scheduler = scheduler or AsyncioScheduler()
        self._auth_handler = auth_handler
        self._retry = retry or AsyncRetryConfig()

        self.registry = DialogRegistry()
        self.q4h = Q4HReconciler(self.registry.resolve_status)
        self.run_control = RunControlAggregator(
            self.scheduler, self._scheduled_root_refresh, debounce_s=debounce_s
        )
        self.view_state = ViewState()
        self.standalone_views: dict[str, DialogView] = {}
        self.router = EventRouter(
            registry=self.registry,
            q4h=self.q4h,
            run_control=self.run_control,
            view_state=self.view_state,
            main_view=self.main_view,
            standalone_views=self.standalone_views,
            send=self.send,
            notifier=self.notifier,
            request_root_refresh=self._request_root_refresh,
        )

        self.connection: ConnectionState | None = None
        self.auth_required = False
        self._subscription: Subscription[Any] | None = None
        self._state_subscription: Subscription[ConnectionState] | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._hierarchy_tasks: dict[str, asyncio.Task[bool]] = {}
        self._hierarchy_follow_up: set[str] = set()
        self._fatal: BaseException | None = None
        self._state_task: asyncio.Task[None] | None = None

        self.resolver: DeepLinkResolver | None = None
        intent = self._parse_intent(deep_link)
        if intent is not None:
            self.resolver = DeepLinkResolver(
                intent,
                registry=self.registry,
                q4h=self.q4h,
                navigator=self,
                fetch_hierarchy=self.load_subdialogs,
                request_q4h_snapshot=lambda: self.send(GetQ4HState()),
                notifier=self.notifier,
            )

    def _parse_intent(self, deep_link: str | DeepLinkIntent | None) -> DeepLinkIntent | None:
        if deep_link is None or deep_link == "":
            return None
        if not isinstance(deep_link, str):
            return deep_link
        try:
            return parse_deep_link(deep_link)
        except InvalidDeepLink as exc:
            logger.warning("deep_link_invalid", url=deep_link, error=str(exc))
            self.notifier.notify(ToastKind.WARNING, f"Invalid deep link: {exc}")
            return None

    # --- read side -----------------------------------------------------------

    @property
    def counts(self) -> RunControlCounts:
        return self.run_control.counts

    @property
    def q4h_question_count(self) -> int:
        return len(self.q4h.visible())

    def visible_q4h_groups(self) -> list[Q4HDialogGroup]:
        return self.q4h.visible_groups()

    # --- outbound ------------------------------------------------------------

    def send(self, message: OutboundMessage) -> None:
        logger.debug("outbound_message", message_type=message.type)
        self.transport.send_raw(message.to_wire())

    def emergency_stop(self) -> bool:
        if self.run_control.stoppable_count <= 0:
            return False
        self.send(EmergencyStop())
        self.run_control.schedule_refresh(RefreshReason.EMERGENCY_STOP)
        return True

    def resume_all(self) -> bool:
        if self.run_control.resumable_count <= 0:
            return False
        self.send(ResumeAll())
        self.run_control.schedule_refresh(RefreshReason.RESUME_ALL)
        return True

    def request_problems(self) -> None:
        self.send(GetProblems())

    def set_diligence_push(self, disable: bool) -> bool:
        current = self.view_state.current
        if current is None:
            return False
        self.send(SetDiligencePush(dialog=current, disable_diligence_push=disable))
        return True

    def refill_diligence_push_budget(self) -> bool:
        current = self.view_state.current
        if current is None:
            return False
        self.send(RefillDiligencePushBudget(dialog=current))
        return True

    # --- standalone subdialog views -------------------------------------------

    def open_subdialog_view(self, self_id: str, view: DialogView) -> None:
        self.standalone_views[self_id] = view

    def close_subdialog_view(self, self_id: str) -> None:
        self.standalone_views.pop(self_id, None)

    # --- navigation ----------------------------------------------------------

    async def select_dialog(self, node: DialogNode) -> None:
        ident = node.ident
        self.view_state.current = ident
        self.view_state.current_course = node.current_course
        self.view_state.total_courses = node.current_course
        self.main_view.update_dialog_context(ident)
        self.main_view.set_run_state(node.run_state)
        self.send(DisplayDialog(dialog=ident))
        if node.is_root and (node.subdialog_count or 0) > 0 and not self.registry.subdialogs(node.root_id):
            self._spawn(self.load_subdialogs(node.root_id), name=f"subdialogs:{node.root_id}")

    def current_course(self, node: DialogNode) -> int | None:
        if self.view_state.is_current(node.ident) and self.view_state.current_course:
            return self.view_state.current_course
        return node.current_course or None

    async def go_to_course(self, node: DialogNode, course: int) -> None:
        self.send(DisplayCourse(dialog=node.ident, course=course))
        self.view_state.current_course = course
        self.main_view.reset_for_course(course)
        latest = self.view_state.total_courses or course
        self.view_state.input_enabled = course >= latest
        self.main_view.set_input_enabled(self.view_state.input_enabled)

    def scroll_to(self, request: ScrollRequest) -> None:
        view = self.router.view_for(self.router.route(request.dialog)) or self.main_view
        view.scroll_to(request)

    # --- fetches -------------------------------------------------------------

    def _revisions(self) -> tuple[int, int]:
        return self.registry.revision, self.q4h.revision

    def _after_change(self, before: tuple[int, int]) -> None:
        registry_rev, q4h_rev = before
        if self.registry.revision != registry_rev:
            self.run_control.recompute(self.registry)
        if self._revisions() != before and self.resolver is not None and not self.resolver.done:
            self._spawn(self.resolver.poke(), name="deep_link")

    async def _escalate_auth(self, exc: AuthRejected) -> None:
        self.auth_required = True
        logger.warning("auth_rejected", origin=exc.origin)
        if self._auth_handler is None:
            self.notifier.notify(ToastKind.ERROR, "Authentication required")
            return
        result = self._auth_handler(exc)
        if inspect.isawaitable(result):
            await result

    async def load_dialogs(self) -> bool:
        """Fetch the root list and replace the registry's roots with it."""
        try:
            nodes = await fetch_with_retry(self.api.list_dialogs, self._retry, operation="list_dialogs")
        except AuthRejected as exc:
            await self._escalate_auth(exc)
            return False
        except FetchFailed as exc:
            self.notifier.notify(ToastKind.ERROR, f"Failed to load dialogs: {exc}")
            return False
        before = self._revisions()
        self.registry.replace_roots(nodes)
        self._after_change(before)
        return True

    async def load_subdialogs(self, root_id: str) -> bool:
        """Fetch one root's hierarchy.

        Concurrent callers share the fetch in flight; a request arriving during
        it queues exactly one more fetch.
        """
        task = self._hierarchy_tasks.get(root_id)
        if task is not None and not task.done():
            self._hierarchy_follow_up.add(root_id)
            return await asyncio.shield(task)
        task = asyncio.create_task(self._load_subdialogs(root_id), name=f"hierarchy:{root_id}")
        self._hierarchy_tasks[root_id] = task
        try:
            return await asyncio.shield(task)
        finally:
            if task.done() and self._hierarchy_tasks.get(root_id) is task:
                del self._hierarchy_tasks[root_id]

    async def _load_subdialogs(self, root_id: str) -> bool:
        while True:
            self._hierarchy_follow_up.discard(root_id)
            ok = await self._fetch_hierarchy(root_id)
            if root_id not in self._hierarchy_follow_up:
                return ok

    async def _fetch_hierarchy(self, root_id: str) -> bool:
        try:
            hierarchy = await fetch_with_retry(
                lambda: self.api.get_hierarchy(root_id), self._retry, operation="get_hierarchy"
            )
        except AuthRejected as exc:
            await self._escalate_auth(exc)
            return False
        except FetchFailed as exc:
            self.notifier.notify(ToastKind.ERROR, f"Failed to load subdialogs of {root_id}: {exc}")
            return False
        before = self._revisions()
        self.registry.merge_subdialogs(root_id, hierarchy.subdialogs, root=hierarchy.root)
        self._after_change(before)
        return True

    def _request_root_refresh(self, reason: str) -> None:
        logger.info("root_refresh_requested", reason=reason)
        self._spawn(self.load_dialogs(), name=f"root_refresh:{reason}")

    async def _scheduled_root_refresh(self) -> None:
        await self.load_dialogs()

    # --- background tasks ----------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("background_task_failed", task=task.get_name(), error=str(exc))
            self._record_fatal(exc)

    def _on_state_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._record_fatal(exc)

    def _record_fatal(self, exc: BaseException) -> None:
        # the stream stops here so no further message lands on diverged state
        if self._fatal is None:
            self._fatal = exc
        if self._subscription is not None:
            self._subscription.cancel()

    def _raise_fatal(self) -> None:
        if self._fatal is not None:
            exc, self._fatal = self._fatal, None
            raise exc

    async def wait_idle(self) -> None:
        """Wait until no background work is pending; re-raise the first failure."""
        while self._background or any(not t.done() for t in self._hierarchy_tasks.values()):
            pending = [*self._background, *self._hierarchy_tasks.values()]
            await asyncio.gather(*pending, return_exceptions=True)
            await asyncio.sleep(0)
        self._raise_fatal()

    # --- stream --------------------------------------------------------------

    async def handle_connection_state(self, state: ConnectionState) -> None:
        self.connection = state
        logger.info("connection_state_changed", status=state.status, error=state.error)
        if state.status == "connected":
            self.send(GetQ4HState())
        elif state.unauthorized:
            await self._escalate_auth(AuthRejected(origin="ws"))
        elif state.status == "error":
            self.notifier.notify(ToastKind.ERROR, f"Connection error: {state.error or 'unknown'}")

    async def _watch_connection(self, subscription: Subscription[ConnectionState]) -> None:
        async for state in subscription.stream():
            await self.handle_connection_state(state)

    async def handle_raw(self, raw: Any) -> None:
        """Validate and apply one decoded stream message."""
        try:
            message = parse_message(raw)
        except InvalidMessage as exc:
            logger.warning("message_rejected", message_type=exc.message_type, error=str(exc))
            self.notifier.notify(ToastKind.WARNING, f"Ignored invalid message: {exc}")
            return

        before = self._revisions()
        try:
            self.router.dispatch(message)
        except (ProtocolViolation, DataIntegrityError) as exc:
            logger.error(
                "stream_fatal_error",
                error=exc.error,
                message_type=message.type,
                detail=str(exc),
            )
            raise
        self._after_change(before)

    async def start(self) -> None:
        """Subscribe, watch the connection and load the root list."""
        self._subscription = self.transport.subscribe()
        self._state_subscription = self.transport.subscribe_connection_state()
        self._state_task = asyncio.create_task(
            self._watch_connection(self._state_subscription), name="connection_state"
        )
        self._state_task.add_done_callback(self._on_state_task_done)
        await self.load_dialogs()
        if self.resolver is not None and not self.resolver.done:
            self._spawn(self.resolver.poke(), name="deep_link")

    async def run(self) -> None:
        """Start and consume the stream until it ends."""
        if self._subscription is None:
            await self.start()
        subscription = self._subscription
        if subscription is None:
            return
        async for raw in subscription.stream():
            self._raise_fatal()
            await self.handle_raw(raw)
            self._raise_fatal()
        self._raise_fatal()
        await self.wait_idle()

    async def teardown(self) -> None:
        for subscription in (self._subscription, self._state_subscription):
            if subscription is not None:
                subscription.cancel()
        self.run_control.teardown()
        if self._owns_scheduler:
            self.scheduler.cancel_all()
        tasks = [*self._background, *self._hierarchy_tasks.values()]
        if self._state_task is not None:
            tasks.append(self._state_task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()
        self._hierarchy_tasks.clear()
        close = getattr(self.api, "aclose", None)
        if close is not None:
            await close()
        logger.info("sync_client_torn_down", cancelled_tasks=len(tasks))
