from __future__ import annotations

import contextlib
import logging
import threading
import weakref
from dataclasses import dataclass, field
from typing import Callable, ClassVar, Iterator, List, Optional, Sequence

from flowforge.core.config import settings
from flowforge.core.errors import (
    EdgeConflictError,
    EdgeCreationError,
    FlowForgeError,
    NodeNotFoundError,
    RootNodeMissingError,
    UnknownCategoryError,
)
from flowforge.data import models
from flowforge.data.store import EdgeRecord, GraphStore, SqlGraphStore
from flowforge.llm.schemas import SuggestionGroup, SuggestionItem
from flowforge.utils.categories import CategoryDescriptor, classify
from flowforge.utils.layout import NodeFootprint, compute_radial_position

from .saga import Saga


logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]
"""Receives ``(level, message)`` where level is ``"success"``, ``"info"`` or ``"error"``."""


def log_notifier(level: str, message: str) -> None:
    if level == "error":
        logger.error(message)
    else:
        logger.info(message)


def _descriptor(category: CategoryDescriptor | str) -> CategoryDescriptor:
    if isinstance(category, CategoryDescriptor):
        return category
    return classify(category)


def next_entry_id(entries: Sequence[object]) -> int:
    """Return one more than the largest numeric entry id, starting at 1."""
    ids = [0]
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        value = entry.get("id")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            ids.append(int(value))
    return max(ids) + 1


@dataclass
class ResolvedNode:
    node_id: int
    created: bool
    title: str


@dataclass
class ItemOutcome:
    title: str
    node_id: Optional[int] = None
    node_created: bool = False
    edge_created: bool = False
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class SuggestionReport:
    """What happened to each item of one suggestion group."""

    project_id: int
    category: str
    items: List[ItemOutcome] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def created_node_ids(self) -> List[int]:
        return [item.node_id for item in self.items if item.node_created and item.node_id is not None]

    @property
    def failures(self) -> List[ItemOutcome]:
        return [item for item in self.items if not item.succeeded]

    @property
    def succeeded(self) -> bool:
        return self.error is None and not self.failures


class NodeResolver:
    """Find or create the node a suggestion item belongs to."""

    def __init__(self, store: GraphStore, footprint: Optional[NodeFootprint] = None):
        self.store = store
        self.footprint = footprint

    def resolve_target_node(
        self,
        project_id: int,
        category: CategoryDescriptor | str,
        title: str,
    ) -> ResolvedNode:
        descriptor = _descriptor(category)
        if descriptor.is_singleton:
            existing = self.store.find_node_by_category(project_id, descriptor.tag)
            node_title = descriptor.default_title
        else:
            node_title = (title or "").strip()
            existing = self.store.find_node_by_category_and_title(project_id, descriptor.tag, node_title)
        if existing is not None:
            return ResolvedNode(node_id=existing.id, created=False, title=existing.title)

        anchor = self.store.get_anchor_node(project_id)
        if anchor is None:
            raise RootNodeMissingError(project_id)

        sibling_count = self.store.count_children(anchor.id)
        position = compute_radial_position(anchor.position, sibling_count, self.footprint)
        node = self.store.create_node(
            project_id,
            descriptor.tag,
            anchor.id,
            node_title,
            position.x,
            position.y,
            descriptor.empty_metadata(node_title),
        )
        logger.info("Created %s node %s (%r) for project %s", descriptor.tag, node.id, node.title, project_id)
        return ResolvedNode(node_id=node.id, created=True, title=node.title)


class EdgeSynthesizer:
    """Connect resolved nodes to their parent, undoing node creation when the edge fails."""

    def __init__(self, store: GraphStore):
        self.store = store

    def connect(
        self,
        project_id: int,
        source_id: int,
        target_id: int,
        source_handle: models.Handle,
        target_handle: models.Handle,
        *,
        created: bool,
        edge_type: models.EdgeType = models.EdgeType.parent_child,
    ) -> Optional[EdgeRecord]:
        """Create ``source -> target``; returns ``None`` when the edge already exists.

        When ``created`` is true the target node was inserted by the caller just
        before this call and is deleted again if the edge cannot be written.
        """
        saga = Saga(f"connect {source_id}->{target_id}")
        if created:
            saga.add_compensation(
                f"delete node {target_id}",
                lambda: self.store.delete_node(target_id),
            )
        try:
            return self.store.create_edge(
                project_id,
                source_id,
                target_id,
                source_handle,
                target_handle,
                edge_type,
            )
        except EdgeConflictError:
            logger.debug("Edge %s -> %s already present", source_id, target_id)
            return None
        except Exception as exc:  # noqa: BLE001
            logger.error("Edge %s -> %s failed: %s", source_id, target_id, exc)
            saga.compensate()
            failures = [f"{result.description}: {result.error}" for result in saga.failures()]
            raise EdgeCreationError(
                f"Failed to connect node {target_id} to {source_id}: {exc}",
                rollback_failures=failures,
            ) from exc

    def ensure_edge(
        self,
        project_id: int,
        anchor_id: int,
        node_id: int,
        category: CategoryDescriptor | str,
        *,
        created: bool = False,
    ) -> bool:
        """Make sure ``anchor -> node`` exists with the category's handles; True when it was written now."""
        descriptor = _descriptor(category)
        edge = self.connect(
            project_id,
            anchor_id,
            node_id,
            descriptor.source_handle,
            descriptor.target_handle,
            created=created,
        )
        if edge is not None:
            logger.info(
                "Connected %s node %s: anchor[%s] -> node[%s]",
                descriptor.tag,
                node_id,
                descriptor.source_handle.value,
                descriptor.target_handle.value,
            )
        return edge is not None


class MetadataMerger:
    """Fold suggestion items into node metadata."""

    def __init__(self, store: GraphStore):
        self.store = store

    def merge_suggestion(
        self,
        node_id: int,
        category: CategoryDescriptor | str,
        item: SuggestionItem,
    ) -> dict:
        descriptor = _descriptor(category)
        node = self.store.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        metadata = dict(node.metadata or {})
        extra = dict(item.metadata or {})

        if descriptor.is_singleton:
            entries = list(metadata.get(descriptor.list_field) or [])
            extra.pop("id", None)
            entry = {
                "id": next_entry_id(entries),
                descriptor.entry_title_field: item.title,
                "description": item.description,
                **extra,
            }
            metadata[descriptor.list_field] = entries + [entry]
        else:
            metadata = {
                **metadata,
                descriptor.canonical_field: item.title,
                "description": item.description,
                **extra,
            }

        self.store.update_node_metadata(node_id, metadata)
        return metadata


class SuggestionService:
    """Apply assistant suggestion groups to a project's graph."""

    # Entries disappear once no caller holds or waits on the lock
    _LOCKS: ClassVar["weakref.WeakValueDictionary[int, threading.Lock]"] = weakref.WeakValueDictionary()
    _LOCKS_GUARD: ClassVar[threading.Lock] = threading.Lock()

    def __init__(
        self,
        store: Optional[GraphStore] = None,
        *,
        notifier: Optional[Notifier] = None,
        footprint: Optional[NodeFootprint] = None,
    ):
        self.store = store or SqlGraphStore()
        self.notify = notifier or log_notifier
        self.resolver = NodeResolver(self.store, footprint)
        self.edges = EdgeSynthesizer(self.store)
        self.merger = MetadataMerger(self.store)

    def process_suggestions(
        self,
        project_id: int,
        group: SuggestionGroup,
        on_complete: Optional[Callable[[], None]] = None,
        *,
        is_active: Optional[Callable[[], bool]] = None,
    ) -> SuggestionReport:
        """Apply every item of ``group`` in order, then call ``on_complete``.

        Item failures are logged, notified and recorded without stopping later
        items. Never raises.
        """
        report = self._run_group(project_id, group)
        self._complete(on_complete, is_active)
        return report

    def process_groups(
        self,
        project_id: int,
        groups: Sequence[SuggestionGroup],
        on_complete: Optional[Callable[[], None]] = None,
        *,
        is_active: Optional[Callable[[], bool]] = None,
    ) -> List[SuggestionReport]:
        reports = [self._run_group(project_id, group) for group in groups]
        self._complete(on_complete, is_active)
        return reports

    # ------------------------------------------------------------------
    # Helpers

    def _run_group(self, project_id: int, group: SuggestionGroup) -> SuggestionReport:
        report = SuggestionReport(project_id=project_id, category=getattr(group, "type", ""))
        try:
            with self._project_lock(project_id):
                descriptor = classify(group.type)
                report.category = descriptor.tag
                logger.info(
                    "Processing %d %s suggestion(s) for project %s",
                    len(group.items),
                    descriptor.tag,
                    project_id,
                )
                for item in group.items:
                    report.items.append(self._apply_item(project_id, descriptor, item))
        except UnknownCategoryError as exc:
            logger.error("Skipping suggestion group: %s", exc)
            report.error = str(exc)
            self.notify("error", f"Invalid suggestion type: {exc.category}")
        except Exception as exc:  # noqa: BLE001
            logger.exception("Error processing suggestions for project %s", project_id)
            report.error = str(exc)
            self.notify("error", "Failed to process suggestions. Check the logs for details.")
        return report

    def _apply_item(
        self,
        project_id: int,
        descriptor: CategoryDescriptor,
        item: SuggestionItem,
    ) -> ItemOutcome:
        outcome = ItemOutcome(title=item.title)
        try:
            resolved = self.resolver.resolve_target_node(project_id, descriptor, item.title)
            outcome.node_id = resolved.node_id
            outcome.node_created = resolved.created

            anchor = self.store.get_anchor_node(project_id)
            if anchor is None:
                raise RootNodeMissingError(project_id)
            try:
                outcome.edge_created = self.edges.ensure_edge(
                    project_id,
                    anchor.id,
                    resolved.node_id,
                    descriptor,
                    created=resolved.created,
                )
            except EdgeCreationError as exc:
                # A node whose removal failed is still in the graph
                if resolved.created and not exc.rollback_failures:
                    outcome.node_id = None
                    outcome.node_created = False
                raise

            self.merger.merge_suggestion(resolved.node_id, descriptor, item)
        except FlowForgeError as exc:
            logger.exception("Suggestion %r for %s failed", item.title, descriptor.tag)
            outcome.error = str(exc)
            self.notify("error", f"Failed to add suggestion {item.title!r}: {exc}")
            return outcome
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error applying suggestion %r", item.title)
            outcome.error = str(exc)
            self.notify("error", f"Failed to add suggestion {item.title!r}: {exc}")
            return outcome

        if outcome.node_created:
            self.notify("success", f"Created {descriptor.display_name} node: {resolved.title}")
        self.notify("success", f"Added {item.title!r} to {resolved.title}")
        return outcome

    def _complete(
        self,
        on_complete: Optional[Callable[[], None]],
        is_active: Optional[Callable[[], bool]],
    ) -> None:
        if on_complete is None:
            return
        try:
            if is_active is not None and not is_active():
                logger.info("Caller no longer active; skipping completion callback")
                return
            on_complete()
        except Exception:  # noqa: BLE001
            logger.exception("Completion callback raised")

    @contextlib.contextmanager
    def _project_lock(self, project_id: int) -> Iterator[None]:
        """Serialise suggestion processing per project within this process."""
        if not settings.serialize_project_writes:
            yield
            return
        with SuggestionService._LOCKS_GUARD:
            lock = SuggestionService._LOCKS.get(project_id)
            if lock is None:
                lock = threading.Lock()
                SuggestionService._LOCKS[project_id] = lock
        with lock:
            yield
