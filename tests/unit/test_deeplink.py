"""Unit tests for deep link parsing and resolution."""

from __future__ import annotations

import asyncio

import pytest

from dialogsync.deeplink import (
    CallSiteIntent,
    DeepLinkResolver,
    DialogIntent,
    GenseqIntent,
    Q4HIntent,
    ResolveState,
    build_deep_link,
    parse_deep_link,
)
from dialogsync.errors import InvalidDeepLink
from dialogsync.services.notifications import LoggingNotifier, ToastKind
from dialogsync.state.q4h import Q4HReconciler
from dialogsync.state.registry import DialogRegistry


class FakeNavigator:
    def __init__(self, course: int = 1) -> None:
        self.selected = []
        self.courses = []
        self.scrolls = []
        self._course = course

    async def select_dialog(self, node) -> None:
        self.selected.append(node.key)
        self._course = node.current_course

    def current_course(self, node) -> int | None:
        return self._course

    async def go_to_course(self, node, course: int) -> None:
        self.courses.append(course)
        self._course = course

    def scroll_to(self, request) -> None:
        self.scrolls.append(request)


class ResolverHarness:
    def __init__(self, intent) -> None:
        self.registry = DialogRegistry()
        self.q4h = Q4HReconciler(self.registry.resolve_status)
        self.navigator = FakeNavigator()
        self.notifier = LoggingNotifier()
        self.fetches: list[str] = []
        self.snapshot_requests = 0
        self.hierarchy: dict[str, list] = {}
        self.resolver = DeepLinkResolver(
            intent,
            registry=self.registry,
            q4h=self.q4h,
            navigator=self.navigator,
            fetch_hierarchy=self._fetch,
            request_q4h_snapshot=self._request_snapshot,
            notifier=self.notifier,
        )

    async def _fetch(self, root_id: str) -> bool:
        self.fetches.append(root_id)
        subs = self.hierarchy.get(root_id)
        if subs is None:
            return False
        return self.registry.merge_subdialogs(root_id, subs)

    def _request_snapshot(self) -> None:
        self.snapshot_requests += 1


# --- parsing ------------------------------------------------------------------


def test_parse_dialog_link_defaults_self_id_to_root() -> None:
    intent = parse_deep_link("https://host.example/dl/dialog?rootId=R1")
    assert intent == DialogIntent(root_id="R1", self_id="R1")


def test_parse_callsite_link() -> None:
    intent = parse_deep_link("/dl/callsite?rootId=R1&selfId=S1&course=3&callId=c-9&msg=12")
    assert isinstance(intent, CallSiteIntent)
    assert (intent.self_id, intent.course, intent.call_id, intent.message_index) == (
        "S1",
        3,
        "c-9",
        12,
    )


def test_parse_genseq_link() -> None:
    intent = parse_deep_link("/dl/genseq?rootId=R1&course=2&genseq=40")
    assert intent == GenseqIntent(root_id="R1", self_id="R1", course=2, genseq=40)


def test_parse_q4h_link_with_only_question_id() -> None:
    intent = parse_deep_link("/dl/q4h?questionId=q-1")
    assert intent == Q4HIntent(question_id="q-1")


def test_parse_non_deep_link_returns_none() -> None:
    assert parse_deep_link("https://host.example/dialogs/R1") is None
    assert parse_deep_link("") is None


@pytest.mark.parametrize(
    "url",
    [
        "/dl/dialog",
        "/dl/callsite?rootId=R1&course=3",
        "/dl/callsite?rootId=R1&course=x&callId=c",
        "/dl/genseq?rootId=R1&course=-1&genseq=2",
        "/dl/q4h?rootId=R1",
        "/dl/teleport?rootId=R1",
    ],
)
def test_parse_rejects_unusable_links(url) -> None:
    with pytest.raises(InvalidDeepLink):
        parse_deep_link(url)


def test_build_deep_link_is_parseable() -> None:
    intent = CallSiteIntent(root_id="R1", self_id="S1", course=3, call_id="c-9")
    url = build_deep_link(intent, "https://host.example/")

    assert url == "https://host.example/dl/callsite?rootId=R1&selfId=S1&course=3&callId=c-9"
    assert parse_deep_link(url) == intent


# --- resolution ---------------------------------------------------------------


@pytest.mark.asyncio
async def test_resolves_loaded_dialog_without_scrolling(make_root) -> None:
    h = ResolverHarness(DialogIntent(root_id="R1", self_id="R1"))
    h.registry.replace_roots([make_root("R1")])

    assert await h.resolver.poke() == ResolveState.RESOLVED

    assert h.navigator.selected == ["R1"]
    assert h.navigator.scrolls == []
    assert h.fetches == []


@pytest.mark.asyncio
async def test_callsite_fetches_hierarchy_then_switches_course(make_root, make_sub) -> None:
    h = ResolverHarness(CallSiteIntent(root_id="R1", self_id="S1", course=3, call_id="c-9"))
    h.registry.replace_roots([make_root("R1", subdialog_count=1)])
    h.hierarchy["R1"] = [make_sub("R1", "S1", current_course=5)]

    assert await h.resolver.poke() == ResolveState.RESOLVED

    assert h.fetches == ["R1"]
    assert h.navigator.selected == ["R1#S1"]
    assert h.navigator.courses == [3]
    assert len(h.navigator.scrolls) == 1
    assert h.navigator.scrolls[0].call_id == "c-9"


@pytest.mark.asyncio
async def test_resolved_link_ignores_further_pokes(make_root) -> None:
    h = ResolverHarness(GenseqIntent(root_id="R1", self_id="R1", course=1, genseq=4))
    h.registry.replace_roots([make_root("R1")])

    await h.resolver.poke()
    await h.resolver.poke()

    assert h.resolver.attempts == 1
    assert len(h.navigator.scrolls) == 1
    assert h.navigator.courses == []


@pytest.mark.asyncio
async def test_missing_dialog_is_abandoned_after_one_fetch(make_root) -> None:
    h = ResolverHarness(DialogIntent(root_id="R1", self_id="S404"))
    h.registry.replace_roots([make_root("R1")])
    h.hierarchy["R1"] = []

    assert await h.resolver.poke() == ResolveState.ABANDONED
    assert await h.resolver.poke() == ResolveState.ABANDONED

    assert h.fetches == ["R1"]
    warnings = h.notifier.of_kind(ToastKind.WARNING)
    assert [t.message for t in warnings] == ["Deep link dialog not found: R1#S404"]
    assert h.navigator.selected == []


@pytest.mark.asyncio
async def test_q4h_link_waits_for_snapshot(make_root, make_sub, make_question) -> None:
    h = ResolverHarness(Q4HIntent(question_id="q-1"))
    h.registry.replace_roots([make_root("R1", subdialog_count=1)])
    h.registry.merge_subdialogs("R1", [make_sub("R1", "S1", current_course=2)])

    assert await h.resolver.poke() == ResolveState.UNRESOLVED
    assert await h.resolver.poke() == ResolveState.UNRESOLVED
    assert h.snapshot_requests == 1

    h.q4h.apply_snapshot([make_question("q-1", "R1", "S1", course=2, message_index=6)])
    assert await h.resolver.poke() == ResolveState.RESOLVED

    assert h.navigator.selected == ["R1#S1"]
    assert h.navigator.courses == []
    [scroll] = h.navigator.scrolls
    assert (scroll.course, scroll.message_index, scroll.question_id) == (2, 6, "q-1")


@pytest.mark.asyncio
async def test_q4h_link_with_full_location_does_not_wait(make_root) -> None:
    h = ResolverHarness(Q4HIntent(question_id="q-7", root_id="R1", self_id="R1", course=1))
    h.registry.replace_roots([make_root("R1")])

    assert await h.resolver.poke() == ResolveState.RESOLVED
    assert h.snapshot_requests == 0


@pytest.mark.asyncio
async def test_concurrent_pokes_collapse_into_one_follow_up(make_root, make_sub) -> None:
    h = ResolverHarness(DialogIntent(root_id="R1", self_id="S1"))
    h.registry.replace_roots([make_root("R1", subdialog_count=1)])
    release = asyncio.Event()

    async def slow_fetch(root_id: str) -> bool:
        h.fetches.append(root_id)
        await release.wait()
        return False

    h.resolver._fetch_hierarchy = slow_fetch

    first = asyncio.create_task(h.resolver.poke())
    await asyncio.sleep(0)
    assert h.resolver.state == ResolveState.RESOLVING

    # the data lands while the first attempt is still waiting on its fetch
    h.registry.merge_subdialogs("R1", [make_sub("R1", "S1")])
    for _ in range(3):
        assert await h.resolver.poke() == ResolveState.RESOLVING

    release.set()
    assert await first == ResolveState.RESOLVED
    assert h.resolver.attempts == 1
    assert h.navigator.selected == ["R1#S1"]
