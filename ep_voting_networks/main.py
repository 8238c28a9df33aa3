#!/usr/bin/env python3
"""
EP Voting Networks - Main Analysis Script

Builds a European Parliament co-voting network from node and edge tables,
orients a precomputed layout, and reports group cohesion and, for a selected
member, similarity rankings.

Usage:
    ep-voting-networks --nodes nodes.csv --edges edges.csv
    ep-voting-networks --nodes nodes.csv --edges edges.csv --country France
    ep-voting-networks --nodes nodes.csv --edges edges.csv --select 12345
    ep-voting-networks --nodes nodes.csv --edges edges.csv --positions pos.csv --output out
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

import pandas as pd

from ep_voting_networks.src.records import NetworkRecordPreprocessor
from ep_voting_networks.src.graph_builder import VotingGraph, VotingGraphBuilder, select_display_relations
from ep_voting_networks.src.groups import GroupCatalog
from ep_voting_networks.src.layout import LayoutOrientationNormalizer
from ep_voting_networks.src.similarity import SimilarityRanker
from ep_voting_networks.src.snapshots import SelectionKey, SelectionCache, GraphSession

logger = logging.getLogger(__name__)


def read_table(path: str) -> pd.DataFrame:
    """Read a CSV table, exiting with an error if the file does not exist."""
    if not Path(path).exists():
        logger.error(f"Input file not found: {path}")
        sys.exit(1)
    return pd.read_csv(path)


def load_selection(
    key: SelectionKey,
    nodes_path: str,
    edges_path: str,
    positions_path: Optional[str] = None,
    min_weight: Optional[float] = None
) -> VotingGraph:
    """
    Load and build the graph for one selection.

    Args:
        key: Selection to build.
        nodes_path: CSV with one row per member.
        edges_path: CSV with one row per pairwise agreement.
        positions_path: Optional CSV with id, x, y columns.
        min_weight: Keep only relations strictly heavier than this.

    Returns:
        VotingGraph for the selection.
    """
    preprocessor = NetworkRecordPreprocessor(read_table(nodes_path), read_table(edges_path))
    preprocessor.preprocess_all()

    if key.country:
        nodes, edges = preprocessor.filter_by_country(key.country)
    else:
        nodes, edges = preprocessor.nodes, preprocessor.edges

    if min_weight is not None:
        edges = preprocessor.filter_by_weight(min_weight, edges=edges)

    if positions_path:
        nodes = preprocessor.attach_positions(read_table(positions_path), nodes=nodes)

    builder = VotingGraphBuilder(
        preprocessor.get_entities(nodes),
        preprocessor.get_relations(edges),
        selection=key
    )
    return builder.build()


def print_similarity(graph: VotingGraph, entity_id: str, top_k: int, mandate: Optional[int]):
    """Print the similarity summary of one member."""
    entity = graph.entity(entity_id)
    if entity is None:
        logger.warning(f"Member {entity_id} is not in the selection")
        return

    result = SimilarityRanker(graph, top_k=top_k).rank(entity_id)

    print(f"\n{'='*60}")
    print(f"SIMILARITY: {entity.label} ({entity.country}, "
          f"{GroupCatalog.acronym(entity.group_id, mandate) if entity.group_id else 'no group'})")
    print(f"{'='*60}")
    print(f"With own group: {result.group_score.avg:.4f} ({result.group_score.count} members)")
    print(f"With own country: {result.country_score.avg:.4f} ({result.country_score.count} members)")
    print("\nAgreement by group:")
    for agreement in result.agreement_by_group:
        print(f"  {GroupCatalog.acronym(agreement.group, mandate)}: {agreement.score:.4f} ({agreement.count})")
    print("\nClosest members:")
    for neighbor in result.top_neighbors:
        other = graph.entity(neighbor.entity_id)
        print(f"  {other.label} ({other.country}): {neighbor.weight:.4f}")
    print(f"{'='*60}\n")


def save_outputs(graph: VotingGraph, session: GraphSession, output_dir: str, mandate: Optional[int]):
    """
    Write analysis tables to CSV.

    Args:
        graph: Active graph.
        session: Session holding the published cohesion results.
        output_dir: Directory to write into.
        mandate: Mandate used for group labels.
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    report = session.displayable(GraphSession.COHESION)
    if report is not None:
        report.matrix.to_frame(mandate=mandate, acronyms=True).to_csv(out / 'cohesion_matrix.csv')
        pd.DataFrame([vars(s) for s in report.intragroup]).to_csv(out / 'intragroup_cohesion.csv', index=False)
        pd.DataFrame([vars(s) for s in report.country_similarity]).to_csv(
            out / 'country_similarity.csv', index=False
        )

    SimilarityRanker(graph).agreement_frame().to_csv(out / 'group_agreement.csv', index=False)

    country_view = graph.selection is not None and graph.selection.country is not None
    display = select_display_relations(graph, country_view=country_view)
    pd.DataFrame([vars(r) for r in display], columns=['source', 'target', 'weight']).to_csv(
        out / 'display_edges.csv', index=False
    )

    positioned = [e for e in graph.entities if e.has_position]
    if positioned:
        pd.DataFrame(
            [(e.id, e.x, e.y) for e in positioned], columns=['id', 'x', 'y']
        ).to_csv(out / 'positions.csv', index=False)

    logger.info(f"Saved outputs to {out}")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Analyze European Parliament Voting Networks"
    )
    parser.add_argument(
        '--nodes', type=str, required=True,
        help='CSV file with one row per member (Id, FullName, Country, GroupID)'
    )
    parser.add_argument(
        '--edges', type=str, required=True,
        help='CSV file with pairwise agreement scores (Source, Target, Weight)'
    )
    parser.add_argument(
        '--positions', type=str, default=None,
        help='CSV file with precomputed layout coordinates (id, x, y)'
    )
    parser.add_argument(
        '--mandate', type=int, default=10,
        help='Parliamentary term of the data, used for group names (default: 10)'
    )
    parser.add_argument(
        '--country', type=str, default=None,
        help='Restrict the network to one country'
    )
    parser.add_argument(
        '--min-weight', type=float, default=None,
        help='Keep only relations with weight strictly above this value'
    )
    parser.add_argument(
        '--select', type=str, default=None,
        help='Member id to print similarity rankings for'
    )
    parser.add_argument(
        '--top-k', type=int, default=5,
        help='Number of closest members to list (default: 5)'
    )
    parser.add_argument(
        '--output', type=str, default=None,
        help='Directory to write CSV results to'
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    key = SelectionKey(mandate=args.mandate, country=args.country)
    cache = SelectionCache()
    graph = cache.get_or_load(
        key,
        lambda k: load_selection(k, args.nodes, args.edges, args.positions, args.min_weight)
    )

    if graph.is_empty():
        logger.error(f"No members found for {key.describe()}")
        sys.exit(1)

    # Orient the layout so readings are comparable across selections
    if any(e.has_position for e in graph.entities):
        positioned = [e for e in graph.entities if e.has_position]
        oriented = {e.id: e for e in LayoutOrientationNormalizer().normalize(positioned)}
        graph = VotingGraphBuilder(
            [oriented.get(e.id, e) for e in graph.entities],
            graph.relations,
            selection=key
        ).build()

    session = GraphSession(top_k=args.top_k)
    session.activate(graph)
    session.run_idle()

    report = session.displayable(GraphSession.COHESION)
    if report is not None:
        print(f"\nSelection: {key.describe()}\n")
        print(report.format(args.mandate))

    if args.select:
        print_similarity(graph, args.select, args.top_k, args.mandate)

    if args.output:
        save_outputs(graph, session, args.output, args.mandate)

    logger.info("Analysis complete!")


if __name__ == "__main__":
    main()
