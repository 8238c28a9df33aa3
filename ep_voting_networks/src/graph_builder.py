"""
Graph Construction Module for EP Voting Networks.

Builds deduplicated, immutable NetworkX graphs from entity and relation
records. Every consumer (country views, layout inputs, analytics) builds its
graphs through VotingGraphBuilder, so the one-relation-per-pair rule lives
in a single place.
"""

import itertools
import logging
import math
from collections import Counter
from typing import Optional, Dict, List, Tuple, Set, Iterable, Callable, Any

import networkx as nx

from .records import Entity, Relation, coerce_weight

logger = logging.getLogger(__name__)

# Process-wide graph version counter; every built graph gets a fresh value
_versions = itertools.count(1)


class VotingGraph:
    """
    Immutable undirected weighted graph of legislators.

    Wraps a frozen networkx.Graph whose nodes carry the Entity under the
    'entity' attribute (plus flattened label/country/group_id/color) and
    whose edges carry 'weight'. Neighbor iteration follows relation order.
    """

    def __init__(
        self,
        network: nx.Graph,
        relations: Iterable[Relation],
        selection: Any = None,
        dropped: Optional[Dict[str, int]] = None
    ):
        """
        Initialize graph. Use VotingGraphBuilder rather than calling this directly.

        Args:
            network: Graph to wrap; it is frozen in place.
            relations: Retained relations in the order they were accepted.
            selection: Key of the selection this graph was built for, if any.
            dropped: Counts of rejected records per reason.
        """
        self.network = nx.freeze(network)
        self.version = next(_versions)
        self.selection = selection
        self.dropped = dict(dropped or {})
        self._entities = tuple(data['entity'] for _, data in network.nodes(data=True))
        self._relations = tuple(relations)

    def __repr__(self) -> str:
        return (f"VotingGraph(version={self.version}, entities={len(self._entities)}, "
                f"relations={len(self._relations)})")

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self.network

    @property
    def entities(self) -> Tuple[Entity, ...]:
        """Entities in input order."""
        return self._entities

    @property
    def relations(self) -> Tuple[Relation, ...]:
        """Retained relations in first-seen order."""
        return self._relations

    def number_of_entities(self) -> int:
        return len(self._entities)

    def number_of_relations(self) -> int:
        return len(self._relations)

    def is_empty(self) -> bool:
        return len(self._entities) == 0

    def entity(self, entity_id: str) -> Optional[Entity]:
        """Look up an entity by id, None if unknown."""
        if entity_id not in self.network:
            return None
        return self.network.nodes[entity_id]['entity']

    def has_relation(self, a: str, b: str) -> bool:
        return self.network.has_edge(a, b)

    def weight(self, a: str, b: str) -> Optional[float]:
        """Weight of the relation between a and b, None if there is none."""
        if not self.network.has_edge(a, b):
            return None
        return self.network.edges[a, b]['weight']

    def neighbors(self, entity_id: str) -> List[Tuple[Entity, float]]:
        """
        Neighbors of an entity with the relation weight.

        Args:
            entity_id: Entity to look up.

        Returns:
            List of (neighbor entity, weight) in relation order; empty for an
            unknown id or an isolated entity.
        """
        if entity_id not in self.network:
            return []
        nodes = self.network.nodes
        return [
            (nodes[other]['entity'], data['weight'])
            for other, data in self.network.adj[entity_id].items()
        ]

    def relation_keys(self) -> Set[Tuple[str, str]]:
        """Unordered endpoint keys of all relations."""
        return {relation.key for relation in self._relations}

    def groups(self) -> List[str]:
        """Distinct group ids in first-seen order (entities without a group skipped)."""
        seen = {}
        for entity in self._entities:
            if entity.group_id and entity.group_id not in seen:
                seen[entity.group_id] = True
        return list(seen)

    def group_colors(self) -> Dict[str, str]:
        """First color seen for each group."""
        colors = {}
        for entity in self._entities:
            if entity.group_id and entity.group_id not in colors:
                colors[entity.group_id] = entity.color
        return colors

    def subgraph(
        self,
        entity_filter: Optional[Callable[[Entity], bool]] = None,
        relation_filter: Optional[Callable[[Relation], bool]] = None,
        selection: Any = None
    ) -> "VotingGraph":
        """
        Build a new graph from a subset of this one.

        Args:
            entity_filter: Keep entities for which this returns True.
            relation_filter: Keep relations for which this returns True.
            selection: Selection key for the new graph.

        Returns:
            New VotingGraph with its own version.
        """
        entities = [e for e in self._entities if entity_filter is None or entity_filter(e)]
        kept = {e.id for e in entities}
        relations = [
            r for r in self._relations
            if r.source in kept and r.target in kept
            and (relation_filter is None or relation_filter(r))
        ]
        return VotingGraphBuilder(entities, relations, selection=selection).build()

    def get_subgraph_by_country(self, country: str, selection: Any = None) -> "VotingGraph":
        """
        Extract the members of one country and the relations among them.

        Args:
            country: Country name.
            selection: Selection key for the new graph.

        Returns:
            New VotingGraph.
        """
        return self.subgraph(entity_filter=lambda e: e.country == country, selection=selection)

    def filter_by_weight(self, min_weight: float, selection: Any = None) -> "VotingGraph":
        """
        Keep only relations strictly heavier than min_weight.

        Used to thin the graph handed to the layout collaborator.
        """
        return self.subgraph(relation_filter=lambda r: r.weight > min_weight, selection=selection)


class VotingGraphBuilder:
    """
    Constructs VotingGraphs from raw entity and relation records.

    Malformed input is never an error. Relations naming an unknown entity,
    self-relations and repeated pairs are dropped (the first occurrence of a
    pair wins, whatever its direction); repeated entity ids keep their first
    record. Drop counts are logged and kept on the builder and the graph.
    """

    def __init__(
        self,
        entity_records: Iterable[Any],
        relation_records: Iterable[Any],
        selection: Any = None
    ):
        """
        Initialize graph builder.

        Args:
            entity_records: Entity objects or mappings with id/label/country/group_id.
            relation_records: Relation objects or mappings with source/target/weight.
            selection: Key of the selection the records belong to.
        """
        self.entity_records = list(entity_records)
        self.relation_records = list(relation_records)
        self.selection = selection
        self.dropped = Counter()
        self.graph = None

    def build(self) -> VotingGraph:
        """
        Build the deduplicated graph in a single pass over the records.

        Returns:
            Frozen VotingGraph.
        """
        self.dropped = Counter()
        G = nx.Graph()

        if not self.entity_records:
            logger.info("No entity records; building empty graph")

        for record in self.entity_records:
            try:
                entity = Entity.from_record(record)
            except ValueError:
                self.dropped['malformed_entity'] += 1
                continue

            if entity.id in G:
                self.dropped['duplicate_entity'] += 1
                continue

            G.add_node(
                entity.id,
                entity=entity,
                label=entity.label,
                country=entity.country,
                group_id=entity.group_id,
                color=entity.color,
            )

        relations = []
        for record in self.relation_records:
            try:
                relation = Relation.from_record(record)
            except ValueError:
                self.dropped['malformed_relation'] += 1
                continue

            source, target = relation.source, relation.target
            if source == target:
                self.dropped['self_relation'] += 1
            elif source not in G or target not in G:
                self.dropped['unknown_entity'] += 1
            elif G.has_edge(source, target):
                self.dropped['duplicate_relation'] += 1
            else:
                weight = coerce_weight(relation.weight)
                if weight != relation.weight or not math.isfinite(relation.weight):
                    relation = Relation(source, target, weight)
                G.add_edge(source, target, weight=weight)
                relations.append(relation)

        if self.dropped:
            details = ", ".join(f"{reason}={count}" for reason, count in sorted(self.dropped.items()))
            logger.warning(f"Dropped records while building graph: {details}")

        graph = VotingGraph(G, relations, selection=self.selection, dropped=self.dropped)
        self.graph = graph
        logger.info(f"Built graph v{graph.version} with {graph.number_of_entities()} entities "
                    f"and {graph.number_of_relations()} relations")
        return graph


def build_voting_graph(
    entity_records: Iterable[Any],
    relation_records: Iterable[Any],
    selection: Any = None
) -> VotingGraph:
    """
    Convenience function to build a voting graph.

    Args:
        entity_records: Entity records.
        relation_records: Relation records.
        selection: Optional selection key.

    Returns:
        VotingGraph.
    """
    return VotingGraphBuilder(entity_records, relation_records, selection=selection).build()


def select_display_relations(
    graph: VotingGraph,
    country_view: bool = False,
    country_min_weight: float = 0.5,
    keep_fraction: float = 0.5
) -> List[Relation]:
    """
    Choose the relations worth drawing.

    Country views are small enough to draw every relation above a weight
    threshold; the full network keeps only the heaviest fraction.

    Args:
        graph: Graph to select from.
        country_view: True when the graph is restricted to one country.
        country_min_weight: Exclusive weight threshold for country views.
        keep_fraction: Share of relations kept for the full network.

    Returns:
        Relations sorted by descending weight (ties in relation order).
    """
    if country_view:
        selected = [r for r in graph.relations if r.weight > country_min_weight]
        return sorted(selected, key=lambda r: -r.weight)

    ranked = sorted(graph.relations, key=lambda r: -r.weight)
    n_keep = math.ceil(len(ranked) * keep_fraction)
    return ranked[:n_keep]
