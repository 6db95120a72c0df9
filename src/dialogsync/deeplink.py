"""Deep links: ``/dl/<kind>?...`` navigation targets.

A deep link is parsed once at start-up. The data it points at usually arrives
later (root list, hierarchy, Q4H snapshot), so :class:`DeepLinkResolver` is
poked after every state change and retries until it resolves or gives up.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Awaitable, Callable, Literal, Optional, Protocol, Union
from urllib.parse import parse_qs, urlencode, urlsplit

from pydantic import Field

from dialogsync.errors import InvalidDeepLink
from dialogsync.models.dialogs import DialogIdent, DialogNode, WireModel
from dialogsync.observability.logging import get_logger
from dialogsync.routing.views import ScrollRequest
from dialogsync.services.notifications import Notifier, ToastKind
from dialogsync.state.q4h import Q4HReconciler
from dialogsync.state.registry import DialogRegistry

logger = get_logger(__name__)

DEEP_LINK_PREFIX = "/dl/"


class DialogIntent(WireModel):
    kind: Literal["dialog"] = "dialog"
    root_id: str
    self_id: str


class CallSiteIntent(WireModel):
    kind: Literal["callsite"] = "callsite"
    root_id: str
    self_id: str
    course: int
    call_id: str
    message_index: Optional[int] = None


class GenseqIntent(WireModel):
    kind: Literal["genseq"] = "genseq"
    root_id: str
    self_id: str
    course: int
    genseq: int


class Q4HIntent(WireModel):
    kind: Literal["q4h"] = "q4h"
    question_id: str
    root_id: Optional[str] = None
    self_id: Optional[str] = None
    course: Optional[int] = None
    message_index: Optional[int] = None
    call_id: Optional[str] = None


DeepLinkIntent = Annotated[
    Union[DialogIntent, CallSiteIntent, GenseqIntent, Q4HIntent],
    Field(discriminator="kind"),
]


# --- URL codec ---------------------------------------------------------------


def _param(params: dict[str, list[str]], name: str) -> str | None:
    values = params.get(name)
    if not values:
        return None
    value = values[0].strip()
    return value or None


def _int_param(params: dict[str, list[str]], name: str, *, required: bool = False) -> int | None:
    raw = _param(params, name)
    if raw is None:
        if required:
            raise InvalidDeepLink(f"Deep link is missing '{name}'")
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise InvalidDeepLink(f"Deep link parameter '{name}' is not an integer: {raw!r}") from exc
    if value < 0:
        raise InvalidDeepLink(f"Deep link parameter '{name}' must be >= 0")
    return value


def _required(params: dict[str, list[str]], name: str) -> str:
    value = _param(params, name)
    if value is None:
        raise InvalidDeepLink(f"Deep link is missing '{name}'")
    return value


def parse_deep_link(url: str) -> DeepLinkIntent | None:
    """Parse a deep link URL (absolute or path-only).

    Returns ``None`` when the path is not a deep link at all; raises
    :class:`InvalidDeepLink` when it is one but cannot be used.
    """
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/")
    if not path.startswith(DEEP_LINK_PREFIX):
        return None
    kind = path[len(DEEP_LINK_PREFIX) :]
    params = parse_qs(parts.query)

    if kind == "q4h":
        return Q4HIntent(
            question_id=_required(params, "questionId"),
            root_id=_param(params, "rootId"),
            self_id=_param(params, "selfId"),
            course=_int_param(params, "course"),
            message_index=_int_param(params, "msg"),
            call_id=_param(params, "callId"),
        )

    root_id = _required(params, "rootId")
    self_id = _param(params, "selfId") or root_id
    if kind == "dialog":
        return DialogIntent(root_id=root_id, self_id=self_id)
    if kind == "callsite":
        return CallSiteIntent(
            root_id=root_id,
            self_id=self_id,
            course=_int_param(params, "course", required=True),
            call_id=_required(params, "callId"),
            message_index=_int_param(params, "msg"),
        )
    if kind == "genseq":
        return GenseqIntent(
            root_id=root_id,
            self_id=self_id,
            course=_int_param(params, "course", required=True),
            genseq=_int_param(params, "genseq", required=True),
        )
    raise InvalidDeepLink(f"Unknown deep link kind {kind!r}")


def build_deep_link(intent: DeepLinkIntent, base_url: str = "") -> str:
    pairs: list[tuple[str, str]] = []

    def add(name: str, value: object) -> None:
        if value is not None and value != "":
            pairs.append((name, str(value)))

    add("rootId", intent.root_id)
    add("selfId", intent.self_id)
    add("course", getattr(intent, "course", None))
    add("msg", getattr(intent, "message_index", None))
    add("callId", getattr(intent, "call_id", None))
    add("genseq", getattr(intent, "genseq", None))
    add("questionId", getattr(intent, "question_id", None))
    query = urlencode(pairs)
    return f"{base_url.rstrip('/')}{DEEP_LINK_PREFIX}{intent.kind}" + (f"?{query}" if query else "")


# --- Resolution --------------------------------------------------------------


class ResolveState(str, Enum):
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    ABANDONED = "abandoned"


class Navigator(Protocol):
    async def select_dialog(self, node: DialogNode) -> None: ...

    def current_course(self, node: DialogNode) -> int | None: ...

    async def go_to_course(self, node: DialogNode, course: int) -> None: ...

    def scroll_to(self, request: ScrollRequest) -> None: ...


class DeepLinkResolver:
    """Drives one deep-link intent to a navigation.

    At most one attempt runs at a time; pokes that arrive meanwhile collapse
    into a single follow-up attempt.
    """

    def __init__(
        self,
        intent: DeepLinkIntent,
        *,
        registry: DialogRegistry,
        q4h: Q4HReconciler,
        navigator: Navigator,
        fetch_hierarchy: Callable[[str], Awaitable[bool]],
        request_q4h_snapshot: Callable[[], None],
        notifier: Notifier,
    ) -> None:
        self.intent = intent
        self.state = ResolveState.UNRESOLVED
        self._registry = registry
        self._q4h = q4h
        self._navigator = navigator
        self._fetch_hierarchy = fetch_hierarchy
        self._request_q4h_snapshot = request_q4h_snapshot
        self._notifier = notifier
        self._in_flight = False
        self._follow_up = False
        self._fetched_roots: set[str] = set()
        self._snapshot_requested = False
        self.attempts = 0

    @property
    def done(self) -> bool:
        return self.state in (ResolveState.RESOLVED, ResolveState.ABANDONED)

    async def poke(self) -> ResolveState:
        if self.done:
            return self.state
        if self._in_flight:
            self._follow_up = True
            return self.state
        self._in_flight = True
        self.state = ResolveState.RESOLVING
        try:
            while True:
                self._follow_up = False
                await self._attempt()
                if self.done or not self._follow_up:
                    break
        finally:
            self._in_flight = False
            if not self.done:
                self.state = ResolveState.UNRESOLVED
        return self.state

    def _q4h_target(self, intent: Q4HIntent) -> ScrollRequest | None:
        question = self._q4h.get(intent.question_id)
        if question is None:
            if intent.root_id and intent.self_id and intent.course is not None:
                return ScrollRequest(
                    dialog=DialogIdent(root_id=intent.root_id, self_id=intent.self_id),
                    course=intent.course,
                    message_index=intent.message_index,
                    call_id=intent.call_id,
                    question_id=intent.question_id,
                )
            if not self._snapshot_requested:
                self._snapshot_requested = True
                self._request_q4h_snapshot()
                logger.info("deep_link_waiting_for_question", question_id=intent.question_id)
            return None
        return ScrollRequest(
            dialog=DialogIdent(
                root_id=intent.root_id or question.root_id,
                self_id=intent.self_id or question.self_id,
            ),
            course=intent.course if intent.course is not None else question.course,
            message_index=(
                intent.message_index if intent.message_index is not None else question.message_index
            ),
            call_id=intent.call_id or question.call_id,
            question_id=intent.question_id,
        )

    def _target(self) -> tuple[DialogIdent, ScrollRequest | None] | None:
        intent = self.intent
        if isinstance(intent, Q4HIntent):
            request = self._q4h_target(intent)
            return (request.dialog, request) if request is not None else None
        ident = DialogIdent(root_id=intent.root_id, self_id=intent.self_id)
        if isinstance(intent, CallSiteIntent):
            return ident, ScrollRequest(
                dialog=ident,
                course=intent.course,
                message_index=intent.message_index,
                call_id=intent.call_id,
            )
        if isinstance(intent, GenseqIntent):
            return ident, ScrollRequest(dialog=ident, course=intent.course, genseq=intent.genseq)
        return ident, None

    async def _attempt(self) -> None:
        self.attempts += 1
        target = self._target()
        if target is None:
            return
        ident, request = target

        node = self._registry.get(ident.root_id, ident.self_id)
        if node is None and ident.root_id not in self._fetched_roots:
            self._fetched_roots.add(ident.root_id)
            await self._fetch_hierarchy(ident.root_id)
            node = self._registry.get(ident.root_id, ident.self_id)
        if node is None:
            logger.warning("deep_link_abandoned", dialog=ident.key, kind=self.intent.kind)
            self._notifier.notify(ToastKind.WARNING, f"Deep link dialog not found: {ident.key}")
            self.state = ResolveState.ABANDONED
            return

        await self._navigator.select_dialog(node)
        if request is not None:
            if self._navigator.current_course(node) != request.course:
                await self._navigator.go_to_course(node, request.course)
            self._navigator.scroll_to(request)
        self.state = ResolveState.RESOLVED
        logger.info("deep_link_resolved", dialog=ident.key, kind=self.intent.kind)
