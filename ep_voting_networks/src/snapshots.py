"""
Selection Snapshots Module for EP Voting Networks.

Keeps loaded data keyed by selection (mandate, country, subject) and tracks
which graph is active, so derived results computed for an older graph are
never shown after the selection changes.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Optional, Dict, Any, Callable, Deque

from .cohesion import CohesionAnalyzer
from .graph_builder import VotingGraph
from .similarity import SimilarityRanker, SimilarityResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionKey:
    """Filters that define one graph."""

    mandate: int
    country: Optional[str] = None
    subject: Optional[str] = None

    def describe(self) -> str:
        parts = [f"mandate {self.mandate}"]
        if self.country:
            parts.append(f"country {self.country}")
        if self.subject:
            parts.append(f"subject {self.subject}")
        return ", ".join(parts)


class SelectionCache:
    """
    Memoizes loaded data per selection.

    Loaders are only called on a miss. Entries stay until invalidated.
    """

    def __init__(self):
        self._entries: Dict[SelectionKey, Any] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: SelectionKey) -> bool:
        return key in self._entries

    def get(self, key: SelectionKey) -> Optional[Any]:
        return self._entries.get(key)

    def get_or_load(self, key: SelectionKey, loader: Callable[[SelectionKey], Any]) -> Any:
        """
        Cached value for a selection, loading it on first use.

        Args:
            key: Selection to look up.
            loader: Called with the key on a miss.

        Returns:
            Cached or freshly loaded value.
        """
        if not isinstance(key, SelectionKey):
            raise ValueError(f"Cache keys must be SelectionKey, got {type(key).__name__}")

        if key in self._entries:
            self.hits += 1
            return self._entries[key]

        self.misses += 1
        logger.debug(f"Loading {key.describe()}")
        value = loader(key)
        self._entries[key] = value
        return value

    def invalidate(self, key: Optional[SelectionKey] = None, mandate: Optional[int] = None) -> int:
        """
        Drop cached selections.

        Args:
            key: Drop this exact selection.
            mandate: Drop every selection of this mandate.

        Returns:
            Number of entries removed.
        """
        if key is not None:
            removed = 0
            if key in self._entries:
                del self._entries[key]
                removed = 1
        elif mandate is not None:
            stale = [k for k in self._entries if k.mandate == mandate]
            for k in stale:
                del self._entries[k]
            removed = len(stale)
        else:
            raise ValueError("invalidate() needs a key or a mandate")

        if removed:
            logger.info(f"Invalidated {removed} cached selection(s)")
        return removed

    def clear(self):
        self._entries.clear()
        self.hits = 0
        self.misses = 0


@dataclass(frozen=True)
class IdleTask:
    """Deferred computation bound to the graph version it was scheduled for."""

    kind: str
    graph_version: int
    compute: Callable[[], Any]


class GraphSession:
    """
    Active graph plus the derived results published for it.

    Every derived result carries a graph_version; results whose version does
    not match the active graph are rejected at publish time and never
    returned for display. The previous graph is kept for display continuity
    until the first result for the new graph is published.
    """

    COHESION = 'cohesion'
    SIMILARITY = 'similarity'

    def __init__(self, top_k: int = 5):
        """
        Initialize session.

        Args:
            top_k: Number of closest neighbors in similarity results.
        """
        self.top_k = top_k
        self.active: Optional[VotingGraph] = None
        self.previous: Optional[VotingGraph] = None
        self._results: Dict[str, Any] = {}
        self._queue: Deque[IdleTask] = deque()

    @property
    def active_version(self) -> Optional[int]:
        return self.active.version if self.active is not None else None

    @property
    def display_graph(self) -> Optional[VotingGraph]:
        """Graph to draw: the previous one while the active graph has no results yet."""
        if self.previous is not None and not self._results:
            return self.previous
        return self.active

    @property
    def pending(self) -> int:
        return len(self._queue)

    def activate(self, graph: VotingGraph, schedule_cohesion: bool = True):
        """
        Make a newly built graph the active one.

        Args:
            graph: Graph for the new selection.
            schedule_cohesion: Queue the cohesion analysis as idle work.
        """
        if self.active is not None and graph.version == self.active.version:
            return

        self.previous = self.active
        self.active = graph
        self._results = {}
        logger.info(f"Activated graph v{graph.version}"
                    + (f" (replacing v{self.previous.version})" if self.previous is not None else ""))

        if schedule_cohesion:
            self.schedule_idle(
                self.COHESION, graph,
                lambda: CohesionAnalyzer(graph).run_full_analysis()
            )

    def is_current(self, result: Any) -> bool:
        """True when result was derived from the active graph."""
        version = getattr(result, 'graph_version', None)
        return self.active is not None and version == self.active.version

    def publish(self, kind: str, result: Any) -> bool:
        """
        Store a derived result if it belongs to the active graph.

        Returns:
            True if published, False if the result is stale.
        """
        if not self.is_current(result):
            logger.debug(f"Discarding stale {kind} result "
                         f"(v{getattr(result, 'graph_version', None)}, active v{self.active_version})")
            return False

        self._results[kind] = result
        if self.previous is not None:
            logger.debug(f"Releasing graph v{self.previous.version}")
            self.previous = None
        return True

    def displayable(self, kind: str) -> Optional[Any]:
        """
        Derived result ready for display, or None while it is not available.
        """
        result = self._results.get(kind)
        if result is None or not self.is_current(result):
            return None
        return result

    def select(self, entity_id: str) -> Optional[SimilarityResult]:
        """
        Rank the neighbors of an entity in the active graph and publish it.

        Returns:
            SimilarityResult, or None when no graph is active.
        """
        if self.active is None:
            return None
        result = SimilarityRanker(self.active, top_k=self.top_k).rank(entity_id)
        self.publish(self.SIMILARITY, result)
        return result

    def schedule_idle(self, kind: str, graph: VotingGraph, compute: Callable[[], Any]):
        """Queue a computation for graph to run when the loop is idle."""
        self._queue.append(IdleTask(kind, graph.version, compute))

    def run_idle(self, max_tasks: Optional[int] = None) -> int:
        """
        Run queued work in order.

        Tasks scheduled for a graph that is no longer active are discarded
        without running.

        Args:
            max_tasks: Stop after this many tasks (run or discarded).

        Returns:
            Number of results published.
        """
        published = 0
        n_done = 0
        while self._queue and (max_tasks is None or n_done < max_tasks):
            task = self._queue.popleft()
            n_done += 1
            if task.graph_version != self.active_version:
                logger.debug(f"Skipping superseded {task.kind} task for v{task.graph_version}")
                continue
            if self.publish(task.kind, task.compute()):
                published += 1
        return published
