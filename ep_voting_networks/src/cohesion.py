"""
Cohesion Analysis Module for EP Voting Networks.

Computes how strongly political groups vote together: average relation
weight within each group (intragroup cohesion), between each pair of groups
(intergroup cohesion) and within each country.

"No data" (no relation between two groups) is kept apart from a genuine
zero average: NaN in matrices and frames, None from scalar lookups.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional, Dict, List, Tuple, Any

import numpy as np
import pandas as pd

from .graph_builder import VotingGraph
from .groups import GroupCatalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroupScore:
    """Average relation weight within one group."""

    group: str
    score: float
    count: int


@dataclass(frozen=True)
class CountryScore:
    """Average relation weight between members of one country."""

    country: str
    score: float
    count: int


@dataclass(frozen=True, eq=False)
class CohesionMatrix:
    """
    Lower-triangular group cohesion matrix.

    Cell (i, j) with i >= j holds the average weight between groups i and j
    (within group i on the diagonal), or NaN when there is no relation. The
    upper triangle is never populated and is always NaN.
    """

    groups: Tuple[str, ...]
    values: np.ndarray
    counts: np.ndarray
    graph_version: int
    group_colors: Dict[str, str] = field(default_factory=dict)

    def index(self, group: str) -> int:
        return self.groups.index(group)

    def cell(self, group_a: str, group_b: str) -> Optional[float]:
        """
        Average weight between two groups, in either order.

        Returns:
            The average, or None when there is no data for the pair.

        Raises:
            ValueError: If a group is not in the matrix.
        """
        i, j = self.index(group_a), self.index(group_b)
        if i < j:
            i, j = j, i
        value = self.values[i, j]
        return None if np.isnan(value) else float(value)

    def count(self, group_a: str, group_b: str) -> int:
        """Number of relations behind a cell."""
        i, j = self.index(group_a), self.index(group_b)
        if i < j:
            i, j = j, i
        return int(self.counts[i, j])

    def max_score(self) -> Optional[float]:
        """Largest populated cell, None if the matrix has no data."""
        if not np.any(~np.isnan(self.values)):
            return None
        return float(np.nanmax(self.values))

    def cell_colors(self) -> List[List[Optional[str]]]:
        """
        Heatmap colors for the lower triangle.

        Cells are scaled by the largest score in the matrix and mapped onto
        the red-green scale. Cells without data and upper-triangle cells are
        None.
        """
        max_score = self.max_score() or 0.0
        n = len(self.groups)
        colors = [[None] * n for _ in range(n)]
        for i in range(n):
            for j in range(i + 1):
                value = self.values[i, j]
                if np.isnan(value):
                    continue
                intensity = value / max_score if max_score > 0 else 0.0
                colors[i][j] = GroupCatalog.heatmap_hex(intensity)
        return colors

    def to_frame(self, mandate: Optional[int] = None, acronyms: bool = False) -> pd.DataFrame:
        """
        Matrix as a DataFrame indexed by group on both axes.

        Args:
            mandate: Mandate used to label groups when acronyms is True.
            acronyms: Label rows/columns with group acronyms instead of ids.
        """
        labels = list(self.groups)
        if acronyms:
            labels = [GroupCatalog.acronym(g, mandate) for g in labels]
        return pd.DataFrame(self.values, index=labels, columns=labels)


@dataclass(frozen=True, eq=False)
class CohesionReport:
    """All cohesion outputs of one graph."""

    matrix: CohesionMatrix
    intragroup: List[GroupScore]
    country_similarity: List[CountryScore]
    edge_stats: Dict[str, Any]
    graph_version: int
    n_entities: int = 0
    n_relations: int = 0

    def format(self, mandate: Optional[int] = None) -> str:
        return format_report(self, mandate)


class CohesionAnalyzer:
    """
    Computes group cohesion statistics over a voting graph.

    All statistics come from one pass over the relations; the matrix only
    adds work proportional to the number of groups squared.
    """

    def __init__(
        self,
        graph: VotingGraph,
        canonical_order: Optional[List[str]] = None,
        excluded_groups: Tuple[str, ...] = (GroupCatalog.UNATTACHED,)
    ):
        """
        Initialize analyzer with a graph.

        Args:
            graph: VotingGraph to analyze.
            canonical_order: Preferred left-to-right group order for the
                matrix; defaults to GroupCatalog.CANONICAL_ORDER.
            excluded_groups: Groups left out of the matrix.
        """
        self.graph = graph
        self.canonical_order = canonical_order
        self.excluded_groups = excluded_groups
        self._metrics_cache = {}

    def _accumulate(self) -> Dict[str, Dict]:
        """Single pass over all relations into sum/count accumulators."""
        if 'accumulators' in self._metrics_cache:
            return self._metrics_cache['accumulators']

        intragroup = defaultdict(lambda: [0.0, 0])
        intergroup = defaultdict(lambda: [0.0, 0])
        country = defaultdict(lambda: [0.0, 0])

        for relation in self.graph.relations:
            source = self.graph.entity(relation.source)
            target = self.graph.entity(relation.target)
            group_s = source.group_id or GroupCatalog.UNKNOWN
            group_t = target.group_id or GroupCatalog.UNKNOWN

            if group_s == group_t:
                stats = intragroup[group_s]
            else:
                key = (group_s, group_t) if group_s < group_t else (group_t, group_s)
                stats = intergroup[key]
            stats[0] += relation.weight
            stats[1] += 1

            if source.country and source.country == target.country:
                stats = country[source.country]
                stats[0] += relation.weight
                stats[1] += 1

        accumulators = {
            'intragroup': dict(intragroup),
            'intergroup': dict(intergroup),
            'country': dict(country),
        }
        self._metrics_cache['accumulators'] = accumulators
        return accumulators

    def intragroup_average(self, group: str) -> Optional[float]:
        """Average weight within a group, None if it has no internal relations."""
        stats = self._accumulate()['intragroup'].get(group)
        if not stats or stats[1] == 0:
            return None
        return stats[0] / stats[1]

    def intergroup_average(self, group_a: str, group_b: str) -> Optional[float]:
        """
        Average weight between two groups; the argument order does not matter.

        Returns None when the groups share no relation. For the same group
        twice this is the intragroup average.
        """
        if group_a == group_b:
            return self.intragroup_average(group_a)
        key = (group_a, group_b) if group_a < group_b else (group_b, group_a)
        stats = self._accumulate()['intergroup'].get(key)
        if not stats or stats[1] == 0:
            return None
        return stats[0] / stats[1]

    def compute_intragroup_cohesion(self) -> List[GroupScore]:
        """
        Cohesion within each group.

        Returns:
            GroupScore per group with internal relations, highest first.
        """
        scores = [
            GroupScore(group=group, score=total / count, count=count)
            for group, (total, count) in self._accumulate()['intragroup'].items()
            if count > 0
        ]
        scores.sort(key=lambda s: -s.score)
        self._metrics_cache['intragroup'] = scores
        return scores

    def compute_intergroup_cohesion(self) -> Dict[Tuple[str, str], Tuple[float, int]]:
        """
        Cohesion between each pair of groups.

        Returns:
            Mapping from (group_a, group_b), sorted by name, to (average, count).
        """
        return {
            key: (total / count, count)
            for key, (total, count) in self._accumulate()['intergroup'].items()
            if count > 0
        }

    def compute_country_similarity(self) -> List[CountryScore]:
        """
        Average weight among members of the same country.

        Returns:
            CountryScore per country, highest first.
        """
        scores = [
            CountryScore(country=country, score=total / count, count=count)
            for country, (total, count) in self._accumulate()['country'].items()
            if count > 0
        ]
        scores.sort(key=lambda s: -s.score)
        self._metrics_cache['country_similarity'] = scores
        return scores

    def ordered_groups(self) -> List[str]:
        """Groups of the graph in matrix order."""
        return GroupCatalog.order_groups(
            self.graph.groups(),
            canonical_order=self.canonical_order,
            exclude=self.excluded_groups
        )

    def compute_cohesion_matrix(self) -> CohesionMatrix:
        """
        Build the lower-triangular cohesion matrix.

        Returns:
            CohesionMatrix tagged with the graph version.
        """
        accumulators = self._accumulate()
        groups = self.ordered_groups()
        n = len(groups)

        values = np.full((n, n), np.nan)
        counts = np.zeros((n, n), dtype=int)

        for i, group_i in enumerate(groups):
            for j in range(i + 1):
                group_j = groups[j]
                if i == j:
                    stats = accumulators['intragroup'].get(group_i)
                else:
                    key = (group_i, group_j) if group_i < group_j else (group_j, group_i)
                    stats = accumulators['intergroup'].get(key)
                if stats and stats[1] > 0:
                    values[i, j] = stats[0] / stats[1]
                    counts[i, j] = stats[1]

        colors = self.graph.group_colors()
        matrix = CohesionMatrix(
            groups=tuple(groups),
            values=values,
            counts=counts,
            graph_version=self.graph.version,
            group_colors={g: colors.get(g, GroupCatalog.color(g)) for g in groups},
        )
        self._metrics_cache['cohesion_matrix'] = matrix
        logger.info(f"Computed {n}x{n} cohesion matrix for graph v{self.graph.version}")
        return matrix

    def compute_cross_group_edge_ratio(self) -> Dict[str, Any]:
        """
        Share of relations that cross group lines.

        Returns:
            Dictionary with edge counts and the cross-group ratio.
        """
        accumulators = self._accumulate()
        within = sum(count for _, count in accumulators['intragroup'].values())
        cross = sum(count for _, count in accumulators['intergroup'].values())
        total = within + cross

        result = {
            'total_edges': total,
            'cross_group_edges': cross,
            'within_group_edges': within,
            'cross_group_ratio': cross / total if total > 0 else 0,
        }
        self._metrics_cache['edge_stats'] = result
        return result

    def run_full_analysis(self) -> CohesionReport:
        """
        Compute every cohesion output for the graph.

        Returns:
            CohesionReport tagged with the graph version.
        """
        logger.info(f"Running cohesion analysis for graph v{self.graph.version}...")
        return CohesionReport(
            matrix=self.compute_cohesion_matrix(),
            intragroup=self.compute_intragroup_cohesion(),
            country_similarity=self.compute_country_similarity(),
            edge_stats=self.compute_cross_group_edge_ratio(),
            graph_version=self.graph.version,
            n_entities=self.graph.number_of_entities(),
            n_relations=self.graph.number_of_relations(),
        )

    def generate_report(self, mandate: Optional[int] = None) -> str:
        """
        Generate text report of cohesion results.

        Args:
            mandate: Mandate number, used for group names.

        Returns:
            Formatted report string.
        """
        return self.run_full_analysis().format(mandate)


def format_report(results: "CohesionReport", mandate: Optional[int] = None) -> str:
    """
    Format a cohesion report as text.

    Args:
        results: Report to format.
        mandate: Mandate number, used for group names.

    Returns:
        Formatted report string.
    """
    report = []
    report.append("=" * 60)
    report.append("EUROPEAN PARLIAMENT VOTING COHESION REPORT")
    report.append("=" * 60)

    report.append("\n## Network")
    report.append(f"  Members: {results.n_entities}")
    report.append(f"  Relations: {results.n_relations}")
    report.append(f"  Cross-Group Relation Ratio: {results.edge_stats['cross_group_ratio']:.4f}")

    report.append("\n## Group Cohesion")
    for score in results.intragroup:
        if score.group == GroupCatalog.UNATTACHED:
            continue
        name = GroupCatalog.display_name(score.group, mandate)
        report.append(f"  {name}: {score.score:.4f} ({score.count} relations)")

    report.append("\n## Intergroup Cohesion")
    matrix = results.matrix
    for i, group_i in enumerate(matrix.groups):
        for j in range(i):
            value = matrix.values[i, j]
            label = "no data" if np.isnan(value) else f"{value:.4f}"
            report.append(f"  {GroupCatalog.acronym(group_i, mandate)} - "
                          f"{GroupCatalog.acronym(matrix.groups[j], mandate)}: {label}")

    report.append("\n## Country Similarity")
    for score in results.country_similarity:
        report.append(f"  {score.country}: {score.score:.4f} ({score.count} relations)")

    return "\n".join(report)


def compute_cohesion(graph: VotingGraph, canonical_order: Optional[List[str]] = None) -> CohesionMatrix:
    """
    Convenience function to compute the cohesion matrix of a graph.

    Args:
        graph: Graph to analyze.
        canonical_order: Optional preferred group order.

    Returns:
        CohesionMatrix.
    """
    return CohesionAnalyzer(graph, canonical_order=canonical_order).compute_cohesion_matrix()
