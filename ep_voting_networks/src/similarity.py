"""
Similarity Ranking Module for EP Voting Networks.

For a selected legislator: average agreement with their own group and their
own country, agreement broken down by the neighbour's group, and the closest
neighbours by relation weight.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple, Mapping

import pandas as pd

from .graph_builder import VotingGraph
from .groups import GroupCatalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreSummary:
    """Average weight over a set of relations; 0.0 with count 0 when empty."""

    avg: float = 0.0
    count: int = 0


@dataclass(frozen=True)
class GroupAgreement:
    group: str
    score: float
    count: int


@dataclass(frozen=True)
class Neighbor:
    entity_id: str
    weight: float


@dataclass(frozen=True)
class MemberScore:
    """Average agreement of one member with the rest of their group."""

    entity_id: str
    score: float
    count: int


@dataclass(frozen=True)
class SubjectScore:
    subject: str
    score: float
    count: int


@dataclass(frozen=True)
class SimilarityResult:
    """
    Similarity outputs for one entity, all derived from one neighbor snapshot.

    Neighbors are referenced by id; look them up in the graph whose version
    is graph_version.
    """

    entity_id: str
    group_score: ScoreSummary
    country_score: ScoreSummary
    agreement_by_group: Tuple[GroupAgreement, ...]
    top_neighbors: Tuple[Neighbor, ...]
    graph_version: int

    @property
    def is_empty(self) -> bool:
        return not self.top_neighbors


def _average(weights: List[float]) -> ScoreSummary:
    if not weights:
        return ScoreSummary()
    return ScoreSummary(avg=sum(weights) / len(weights), count=len(weights))


class SimilarityRanker:
    """
    Ranks the neighbors of an entity within one graph.

    Each call to rank() takes a single snapshot of the entity's neighbors and
    derives every output from it, so results never mix graph versions.
    """

    def __init__(self, graph: VotingGraph, top_k: int = 5):
        """
        Initialize ranker.

        Args:
            graph: Graph to rank within.
            top_k: Number of closest neighbors to keep.
        """
        if top_k < 0:
            raise ValueError(f"top_k must be non-negative, got {top_k}")
        self.graph = graph
        self.top_k = top_k

    def empty_result(self, entity_id: str) -> SimilarityResult:
        return SimilarityResult(
            entity_id=entity_id,
            group_score=ScoreSummary(),
            country_score=ScoreSummary(),
            agreement_by_group=(),
            top_neighbors=(),
            graph_version=self.graph.version,
        )

    def rank(self, entity_id: str) -> SimilarityResult:
        """
        Compute similarity outputs for one entity.

        Args:
            entity_id: Selected entity.

        Returns:
            SimilarityResult tagged with the graph version. Unknown or
            isolated entities give an empty result.
        """
        selected = self.graph.entity(entity_id)
        if selected is None:
            logger.warning(f"Entity {entity_id} not in graph v{self.graph.version}")
            return self.empty_result(entity_id)

        # One snapshot feeds every output below
        neighbors = self.graph.neighbors(entity_id)
        if not neighbors:
            logger.debug(f"Entity {entity_id} has no relations")
            return self.empty_result(entity_id)

        same_group = [
            w for other, w in neighbors
            if selected.group_id is not None and other.group_id == selected.group_id
        ]
        same_country = [
            w for other, w in neighbors
            if selected.country is not None and other.country == selected.country
        ]

        # Ties keep first-encounter order
        by_group = {}
        for other, weight in neighbors:
            by_group.setdefault(other.group_id or GroupCatalog.UNKNOWN, []).append(weight)
        agreement = [
            GroupAgreement(group=group, score=sum(ws) / len(ws), count=len(ws))
            for group, ws in by_group.items()
        ]
        agreement.sort(key=lambda a: -a.score)

        closest = sorted(neighbors, key=lambda pair: -pair[1])[:self.top_k]

        return SimilarityResult(
            entity_id=entity_id,
            group_score=_average(same_group),
            country_score=_average(same_country),
            agreement_by_group=tuple(agreement),
            top_neighbors=tuple(Neighbor(other.id, weight) for other, weight in closest),
            graph_version=self.graph.version,
        )

    def rank_group_members(self, group_id: str) -> List[MemberScore]:
        """
        Rank the members of a group by average agreement with the group.

        Members without relations to their group score 0.0 with count 0.

        Args:
            group_id: Group to rank.

        Returns:
            MemberScore per member, highest first.
        """
        scores = []
        for entity in self.graph.entities:
            if entity.group_id != group_id:
                continue
            weights = [w for other, w in self.graph.neighbors(entity.id) if other.group_id == group_id]
            summary = _average(weights)
            scores.append(MemberScore(entity.id, summary.avg, summary.count))

        scores.sort(key=lambda s: -s.score)
        return scores

    def agreement_frame(self) -> pd.DataFrame:
        """
        Agreement of every entity with every neighbouring group.

        Returns:
            DataFrame with columns entity_id, group, score (mean weight) and
            count, one row per (entity, neighbour group) pair.
        """
        columns = ['entity_id', 'group', 'score', 'count']
        if self.graph.number_of_relations() == 0:
            return pd.DataFrame(columns=columns)

        groups = {e.id: e.group_id or GroupCatalog.UNKNOWN for e in self.graph.entities}
        edges = pd.DataFrame(
            [(r.source, r.target, r.weight) for r in self.graph.relations],
            columns=['source', 'target', 'weight']
        )

        # Each relation counts once from each endpoint
        both = pd.concat([
            edges.rename(columns={'source': 'entity_id', 'target': 'other'}),
            edges.rename(columns={'target': 'entity_id', 'source': 'other'}),
        ], ignore_index=True)
        both['group'] = both['other'].map(groups)

        frame = (
            both.groupby(['entity_id', 'group'], sort=True)['weight']
            .agg(['mean', 'count'])
            .reset_index()
            .rename(columns={'mean': 'score'})
        )
        return frame[columns]


def rank_by_subject(
    subject_graphs: Mapping[str, VotingGraph],
    entity_id: str
) -> List[SubjectScore]:
    """
    Own-group similarity of an entity for each voting subject.

    Args:
        subject_graphs: One graph per subject, built from that subject's votes.
        entity_id: Selected entity.

    Returns:
        SubjectScore per subject where the entity has same-group relations
        with positive weight, highest first.
    """
    scores = []
    for subject, graph in subject_graphs.items():
        selected = graph.entity(entity_id)
        if selected is None or selected.group_id is None:
            continue
        weights = [
            w for other, w in graph.neighbors(entity_id)
            if w > 0 and other.group_id == selected.group_id
        ]
        if weights:
            scores.append(SubjectScore(subject, sum(weights) / len(weights), len(weights)))

    scores.sort(key=lambda s: -s.score)
    logger.debug(f"Subject scores for {entity_id}: {len(scores)} of {len(subject_graphs)} subjects")
    return scores


def subject_agreement(
    subject_graphs: Mapping[str, VotingGraph],
    entity_id: str
) -> Dict[str, List[GroupAgreement]]:
    """
    Agreement by neighbour group for each subject.

    Args:
        subject_graphs: One graph per subject.
        entity_id: Selected entity.

    Returns:
        Mapping from subject to its agreement-by-group ranking; subjects where
        the entity has no relations are omitted.
    """
    result = {}
    for subject, graph in subject_graphs.items():
        if entity_id not in graph:
            continue
        ranking = SimilarityRanker(graph).rank(entity_id).agreement_by_group
        if ranking:
            result[subject] = list(ranking)
    return result
