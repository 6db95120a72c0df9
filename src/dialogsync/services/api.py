"""Dialog data fetches: root list and per-root hierarchy."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from dialogsync.config import settings
from dialogsync.errors import AuthRejected, FetchFailed, ProtocolViolation
from dialogsync.models.dialogs import DialogHierarchy, DialogNode
from dialogsync.observability.logging import get_logger

logger = get_logger(__name__)

__all__ = [
    "DialogApi",
    "DialogApiClient",
    "FixtureDialogApi",
    "parse_dialog_list",
    "parse_hierarchy",
]


class DialogApi(Protocol):
    async def list_dialogs(self) -> list[DialogNode]: ...

    async def get_hierarchy(self, root_id: str) -> DialogHierarchy: ...


def parse_dialog_list(payload: Any) -> list[DialogNode]:
    """Accept ``{"dialogs": [...]}`` or a bare list."""
    items = payload.get("dialogs") if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        raise ProtocolViolation("Dialog list response has no 'dialogs' array")
    try:
        return [DialogNode.model_validate(item) for item in items]
    except ValidationError as exc:
        raise ProtocolViolation(f"Dialog list entry failed validation: {exc.error_count()} error(s)") from exc


def parse_hierarchy(payload: Any, root_id: str) -> DialogHierarchy:
    """Parse ``{"hierarchy": {"root": {...}, "subdialogs": [...]}}``.

    The hierarchy root names its id ``id``; subdialogs may omit ``rootId`` and
    ``supdialogId``, which both default to the root.
    """
    data = payload.get("hierarchy", payload) if isinstance(payload, dict) else None
    if not isinstance(data, dict) or not isinstance(data.get("root"), dict):
        raise ProtocolViolation(f"Hierarchy response for {root_id} has no root")

    root = dict(data["root"])
    resolved_root_id = root.get("rootId") or root.get("id") or root_id
    root["rootId"] = resolved_root_id
    root.setdefault("selfId", resolved_root_id)
    if resolved_root_id != root_id:
        raise ProtocolViolation(f"Hierarchy for {root_id} returned root {resolved_root_id}")

    subdialogs = []
    for raw in data.get("subdialogs") or []:
        if not isinstance(raw, dict):
            raise ProtocolViolation(f"Hierarchy for {root_id} has a non-object subdialog")
        sub = dict(raw)
        sub.setdefault("rootId", resolved_root_id)
        sub.setdefault("supdialogId", resolved_root_id)
        subdialogs.append(sub)

    try:
        return DialogHierarchy.model_validate({"root": root, "subdialogs": subdialogs})
    except ValidationError as exc:
        raise ProtocolViolation(
            f"Hierarchy for {root_id} failed validation: {exc.error_count()} error(s)"
        ) from exc


class DialogApiClient:
    """httpx client for the workspace backend's dialog endpoints.

    HTTP 401 raises :class:`AuthRejected`; any other failure raises
    :class:`FetchFailed`. Retrying is left to the caller.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        auth_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (settings.api_base_url if base_url is None else base_url).rstrip("/")
        self.auth_key = settings.auth_key if auth_key is None else auth_key
        self.timeout = settings.request_timeout_s if timeout is None else timeout
        self._client = client
        self._owns_client = client is None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.auth_key:
            headers["Authorization"] = f"Bearer {self.auth_key}"
        return headers

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, path: str) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = await self._http().get(url, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("api_request_failed", url=url, error=str(exc))
            raise FetchFailed(f"GET {path} failed: {exc}") from exc

        if response.status_code == 401:
            logger.warning("api_unauthorized", url=url)
            raise AuthRejected(origin="api")
        if response.status_code >= 400:
            logger.warning("api_http_error", url=url, status_code=response.status_code)
            raise FetchFailed(
                f"GET {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise FetchFailed(f"GET {path} returned invalid JSON", status_code=response.status_code) from exc

    async def list_dialogs(self) -> list[DialogNode]:
        nodes = parse_dialog_list(await self._get_json("/api/dialogs"))
        logger.debug("api_dialogs_listed", count=len(nodes))
        return nodes

    async def get_hierarchy(self, root_id: str) -> DialogHierarchy:
        payload = await self._get_json(f"/api/dialogs/{quote(root_id, safe='')}/hierarchy")
        hierarchy = parse_hierarchy(payload, root_id)
        logger.debug("api_hierarchy_fetched", root_id=root_id, subdialogs=len(hierarchy.subdialogs))
        return hierarchy


class FixtureDialogApi:
    """Serves dialog fetches from a JSON document instead of the network.

    The document holds ``dialogs`` (root-list entries, optionally with
    subdialog entries mixed in) and an optional ``hierarchies`` mapping of root
    id to hierarchy payload.
    """

    def __init__(self, data: dict[str, Any]):
        self._data = data
        self.calls: list[str] = []

    @classmethod
    def from_file(cls, path: str | Path) -> "FixtureDialogApi":
        with open(path, encoding="utf-8") as fh:
            return cls(json.load(fh))

    async def list_dialogs(self) -> list[DialogNode]:
        self.calls.append("list_dialogs")
        return [n for n in parse_dialog_list(self._data.get("dialogs", [])) if n.is_root]

    async def get_hierarchy(self, root_id: str) -> DialogHierarchy:
        self.calls.append(f"get_hierarchy:{root_id}")
        hierarchies = self._data.get("hierarchies") or {}
        if root_id in hierarchies:
            return parse_hierarchy(hierarchies[root_id], root_id)

        nodes = [n for n in parse_dialog_list(self._data.get("dialogs", [])) if n.root_id == root_id]
        root = next((n for n in nodes if n.is_root), None)
        if root is None:
            raise FetchFailed(f"Dialog {root_id} not found", status_code=404)
        return DialogHierarchy(root=root, subdialogs=tuple(n for n in nodes if not n.is_root))
