"""Dialog registry: roots plus lazily loaded subdialogs.

Every mutation goes through one of the merge methods below. Each merge builds the
next node table and commits it only if it differs from the current one, so
repeating a merge is a no-op that reports ``False``. Entries are keyed by
``(root_id, self_id)`` and kept in display order: each root followed by its
subdialogs.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Optional

from dialogsync.errors import DataIntegrityError, ProtocolViolation
from dialogsync.models.dialogs import DialogNode, DialogStatus, RunState
from dialogsync.observability.logging import get_logger

logger = get_logger(__name__)

__all__ = ["DialogRegistry"]

NodeKey = tuple[str, str]


def _require_task_doc(node: DialogNode) -> None:
    if not node.task_doc_path or not node.task_doc_path.strip():
        raise DataIntegrityError(
            f"Dialog {node.key} (agent {node.agent_id or '?'}) has no task document path"
        )


class DialogRegistry:
    """Known dialog nodes and their run states."""

    def __init__(self) -> None:
        self._nodes: dict[NodeKey, DialogNode] = {}
        self.revision = 0

    # --- reads ---------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, root_id: str, self_id: Optional[str] = None) -> DialogNode | None:
        return self._nodes.get((root_id, self_id or root_id))

    def has_root(self, root_id: str) -> bool:
        return (root_id, root_id) in self._nodes

    def nodes(self) -> list[DialogNode]:
        return list(self._nodes.values())

    def roots(self) -> list[DialogNode]:
        return [n for n in self._nodes.values() if n.is_root]

    def subdialogs(self, root_id: str) -> list[DialogNode]:
        return [n for n in self._nodes.values() if n.root_id == root_id and not n.is_root]

    def resolve_status(self, root_id: str, self_id: str) -> DialogStatus | None:
        """Effective status of a dialog, read through its root.

        Subdialogs live in their root's persistence bucket, so the root's status
        wins whenever the root is known. ``None`` means nothing is known locally.
        """
        if not root_id or not self_id:
            return None
        root = self._nodes.get((root_id, root_id))
        if root is not None:
            return root.status
        node = self._nodes.get((root_id, self_id))
        return node.status if node is not None else None

    # --- merges --------------------------------------------------------------

    def _commit(self, nodes: dict[NodeKey, DialogNode]) -> bool:
        if list(nodes.items()) == list(self._nodes.items()):
            return False
        self._nodes = nodes
        self.revision += 1
        return True

    def replace_roots(self, new_roots: Iterable[DialogNode]) -> bool:
        """Replace all root entries from an authoritative root-list fetch.

        Subdialogs of a root that still reports ``subdialog_count > 0`` survive
        when the fetch does not include them, re-stamped with the root-owned
        fields (status, task doc). Roots missing from the fetch drop with their
        subtree.
        """
        incoming = list(new_roots)
        for node in incoming:
            _require_task_doc(node)

        incoming_subs: dict[str, list[DialogNode]] = {}
        roots: list[DialogNode] = []
        for node in incoming:
            if node.is_root:
                roots.append(node)
            else:
                incoming_subs.setdefault(node.root_id, []).append(node)

        nodes: dict[NodeKey, DialogNode] = {}
        carried = 0
        for root in roots:
            nodes[(root.root_id, root.root_id)] = root
            subs = incoming_subs.pop(root.root_id, None)
            if subs is not None:
                for sub in subs:
                    nodes[(sub.root_id, sub.self_id)] = sub
                continue
            if (root.subdialog_count or 0) <= 0:
                continue
            for sub in self.subdialogs(root.root_id):
                nodes[(sub.root_id, sub.self_id)] = sub.model_copy(
                    update={"status": root.status, "task_doc_path": root.task_doc_path}
                )
                carried += 1

        if incoming_subs:
            logger.warning(
                "registry_orphan_subdialogs_dropped",
                root_ids=sorted(incoming_subs),
                count=sum(len(v) for v in incoming_subs.values()),
            )

        changed = self._commit(nodes)
        logger.debug(
            "registry_roots_replaced",
            roots=len(roots),
            carried_subdialogs=carried,
            changed=changed,
        )
        return changed

    def merge_subdialogs(
        self,
        root_id: str,
        subdialogs: Iterable[DialogNode],
        *,
        root: DialogNode | None = None,
    ) -> bool:
        """Replace exactly the subdialog set under ``root_id``.

        ``root`` (from a hierarchy fetch) refreshes the root entry as well. Nodes
        arriving without a run state keep the last one known locally.
        """
        incoming = list(subdialogs)
        for sub in incoming:
            if sub.root_id != root_id or sub.is_root:
                raise ProtocolViolation(
                    f"Hierarchy for root {root_id} contains foreign node {sub.key}"
                )
            _require_task_doc(sub)
        if root is not None:
            if root.root_id != root_id or not root.is_root:
                raise ProtocolViolation(f"Hierarchy root {root.key} does not match {root_id}")
            _require_task_doc(root)

        merged_subs: list[DialogNode] = []
        for sub in incoming:
            update: dict[str, object] = {}
            previous = self._nodes.get((sub.root_id, sub.self_id))
            if sub.run_state is None and previous is not None and previous.run_state is not None:
                update["run_state"] = previous.run_state
            if sub.supdialog_id is None:
                update["supdialog_id"] = root_id
            merged_subs.append(sub.model_copy(update=update) if update else sub)

        root_key = (root_id, root_id)
        merged_root: DialogNode | None = None
        if root is not None:
            previous_root = self._nodes.get(root_key)
            update = {"subdialog_count": len(merged_subs)}
            if root.run_state is None and previous_root is not None:
                update["run_state"] = previous_root.run_state
            merged_root = root.model_copy(update=update)

        nodes: dict[NodeKey, DialogNode] = {}
        placed = False
        for key, node in self._nodes.items():
            if node.root_id == root_id and not node.is_root:
                continue
            if key == root_key:
                nodes[key] = merged_root if merged_root is not None else node
                for sub in merged_subs:
                    nodes[(sub.root_id, sub.self_id)] = sub
                placed = True
                continue
            nodes[key] = node
        if not placed:
            if merged_root is not None:
                nodes[root_key] = merged_root
            for sub in merged_subs:
                nodes[(sub.root_id, sub.self_id)] = sub

        changed = self._commit(nodes)
        logger.debug(
            "registry_subdialogs_merged",
            root_id=root_id,
            subdialogs=len(merged_subs),
            changed=changed,
        )
        return changed

    def upsert_subdialog(self, node: DialogNode) -> bool:
        """Insert or refresh one subdialog announced by the stream."""
        if node.is_root:
            raise ProtocolViolation(f"Subdialog node {node.key} has selfId equal to rootId")
        _require_task_doc(node)

        key = (node.root_id, node.self_id)
        previous = self._nodes.get(key)
        update: dict[str, object] = {}
        if node.run_state is None and previous is not None and previous.run_state is not None:
            update["run_state"] = previous.run_state
        if node.supdialog_id is None:
            update["supdialog_id"] = node.root_id
        if update:
            node = node.model_copy(update=update)

        items = list(self._nodes.items())
        if previous is not None:
            nodes = {k: (node if k == key else v) for k, v in items}
        else:
            insert_at = len(items)
            for idx, (_, existing) in enumerate(items):
                if existing.root_id == node.root_id:
                    insert_at = idx + 1
            items.insert(insert_at, (key, node))
            nodes = dict(items)

        root_key = (node.root_id, node.root_id)
        root = nodes.get(root_key)
        if root is not None:
            known = sum(1 for n in nodes.values() if n.root_id == node.root_id and not n.is_root)
            if (root.subdialog_count or 0) < known:
                nodes[root_key] = root.model_copy(update={"subdialog_count": known})

        return self._commit(nodes)

    def patch_run_state(self, root_id: str, self_id: str, run_state: RunState) -> bool:
        """Update one node's run state; unknown nodes are ignored."""
        key = (root_id, self_id)
        node = self._nodes.get(key)
        if node is None:
            logger.debug("registry_run_state_patch_skipped", root_id=root_id, self_id=self_id)
            return False
        if node.run_state == run_state:
            return False
        nodes = dict(self._nodes)
        nodes[key] = node.model_copy(update={"run_state": run_state})
        return self._commit(nodes)

    def move_roots(self, root_ids: Iterable[str], to_status: DialogStatus) -> bool:
        """Apply a status move to the listed roots and their loaded subdialogs."""
        targets = set(root_ids)
        nodes = {
            key: (
                node.model_copy(update={"status": to_status})
                if node.root_id in targets and node.status != to_status
                else node
            )
            for key, node in self._nodes.items()
        }
        return self._commit(nodes)

    def remove_roots(self, root_ids: Iterable[str]) -> bool:
        targets = set(root_ids)
        nodes = {k: v for k, v in self._nodes.items() if v.root_id not in targets}
        return self._commit(nodes)

    def bump_last_modified(self, root_id: str, self_id: str, timestamp: str) -> bool:
        """Record activity on a dialog.

        The targeted node and its root row are bumped; sibling subdialogs are
        left alone even though they share the root id.
        """
        if not timestamp:
            return False
        nodes: dict[NodeKey, DialogNode] = {}
        for key, node in self._nodes.items():
            if node.root_id == root_id and (node.is_root or node.self_id == self_id):
                if node.last_modified != timestamp:
                    node = node.model_copy(update={"last_modified": timestamp})
            nodes[key] = node
        return self._commit(nodes)
