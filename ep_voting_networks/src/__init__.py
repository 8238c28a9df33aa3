"""
EP Voting Networks Analysis Package.

This package provides the analytics behind European Parliament co-voting
network views: graph construction, layout orientation, group cohesion,
similarity rankings and pointer hit testing.
"""

from .groups import GroupCatalog
from .records import Entity, Relation, NetworkRecordPreprocessor
from .graph_builder import VotingGraph, VotingGraphBuilder, build_voting_graph, select_display_relations
from .layout import LayoutOrientationNormalizer, apply_positions, orient_layout
from .cohesion import CohesionAnalyzer, CohesionMatrix, CohesionReport
from .similarity import SimilarityRanker, SimilarityResult, rank_by_subject
from .hit_testing import SpatialHitTester, ViewTransform, node_radius
from .snapshots import SelectionKey, SelectionCache, GraphSession

__version__ = "1.0.0"
__all__ = [
    "GroupCatalog",
    "Entity",
    "Relation",
    "NetworkRecordPreprocessor",
    "VotingGraph",
    "VotingGraphBuilder",
    "build_voting_graph",
    "select_display_relations",
    "LayoutOrientationNormalizer",
    "apply_positions",
    "orient_layout",
    "CohesionAnalyzer",
    "CohesionMatrix",
    "CohesionReport",
    "SimilarityRanker",
    "SimilarityResult",
    "rank_by_subject",
    "SpatialHitTester",
    "ViewTransform",
    "node_radius",
    "SelectionKey",
    "SelectionCache",
    "GraphSession",
]
