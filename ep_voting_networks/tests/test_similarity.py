"""Tests for the similarity module."""

import pytest

from ep_voting_networks.src.graph_builder import build_voting_graph
from ep_voting_networks.src.similarity import (
    SimilarityRanker, ScoreSummary, rank_by_subject, subject_agreement
)


@pytest.fixture
def scenario_graph():
    """A selected with neighbors B (same group) 0.8 and C 0.2."""
    entities = [
        {'id': 'A', 'country': 'France', 'group_id': 'X'},
        {'id': 'B', 'country': 'France', 'group_id': 'X'},
        {'id': 'C', 'country': 'Germany', 'group_id': 'Y'},
        {'id': 'D', 'country': 'Germany', 'group_id': 'Y'},
    ]
    relations = [
        {'source': 'A', 'target': 'B', 'weight': 0.8},
        {'source': 'C', 'target': 'A', 'weight': 0.2},
        {'source': 'C', 'target': 'D', 'weight': 0.7},
        {'source': 'B', 'target': 'D', 'weight': 0.4},
    ]
    return build_voting_graph(entities, relations)


@pytest.fixture
def tied_graph():
    """Selected entity S with seven neighbors and tied weights."""
    weights = [0.5, 0.9, 0.5, 0.9, 0.1, 0.5, 0.5]
    groups = ['P', 'Q', 'R', 'P', 'Q', 'R', 'P']
    entities = [{'id': 'S', 'group_id': 'P', 'country': 'Italy'}] + [
        {'id': f"N{i + 1}", 'group_id': g, 'country': 'Italy' if i % 2 else 'Spain'}
        for i, g in enumerate(groups)
    ]
    relations = [
        {'source': 'S', 'target': f"N{i + 1}", 'weight': w}
        for i, w in enumerate(weights)
    ]
    return build_voting_graph(entities, relations)


class TestSimilarityRanker:
    """Test cases for SimilarityRanker."""

    def test_scenario(self, scenario_graph):
        """Test top neighbors and same-group score."""
        result = SimilarityRanker(scenario_graph).rank('A')

        assert [(n.entity_id, n.weight) for n in result.top_neighbors] == [('B', 0.8), ('C', 0.2)]
        assert result.group_score == ScoreSummary(avg=0.8, count=1)
        assert result.country_score == ScoreSummary(avg=0.8, count=1)
        assert result.graph_version == scenario_graph.version

    def test_agreement_by_group(self, scenario_graph):
        """Test agreement is averaged per neighbor group and sorted."""
        result = SimilarityRanker(scenario_graph).rank('D')

        assert [(a.group, a.score, a.count) for a in result.agreement_by_group] == [
            ('Y', 0.7, 1), ('X', 0.4, 1)
        ]
        assert result.group_score.avg == 0.7

    def test_top_neighbors_stable_ties(self, tied_graph):
        """Test ranking length, ordering and tie-break by relation order."""
        result = SimilarityRanker(tied_graph).rank('S')
        weights = [n.weight for n in result.top_neighbors]

        assert len(result.top_neighbors) == 5
        assert all(a >= b for a, b in zip(weights, weights[1:]))
        assert [n.entity_id for n in result.top_neighbors] == ['N2', 'N4', 'N1', 'N3', 'N6']

    def test_agreement_ties_keep_first_encounter(self, tied_graph):
        """Test groups with equal averages keep first-encounter order."""
        result = SimilarityRanker(tied_graph).rank('S')

        assert [a.group for a in result.agreement_by_group] == ['P', 'Q', 'R']
        assert result.agreement_by_group[0].score == pytest.approx((0.5 + 0.9 + 0.5) / 3)
        assert result.agreement_by_group[1].score == pytest.approx(0.5)

    def test_group_and_country_scores(self, tied_graph):
        """Test same-group and same-country averages."""
        result = SimilarityRanker(tied_graph).rank('S')

        assert result.group_score.count == 3
        assert result.group_score.avg == pytest.approx((0.5 + 0.9 + 0.5) / 3)
        assert result.country_score.count == 3
        assert result.country_score.avg == pytest.approx((0.9 + 0.9 + 0.5) / 3)

    def test_top_k(self, tied_graph):
        """Test the number of neighbors kept is configurable."""
        assert len(SimilarityRanker(tied_graph, top_k=2).rank('S').top_neighbors) == 2
        with pytest.raises(ValueError):
            SimilarityRanker(tied_graph, top_k=-1)

    def test_isolated_entity(self):
        """Test an entity without relations gives an empty result."""
        graph = build_voting_graph([{'id': 'a', 'group_id': 'X'}], [])
        result = SimilarityRanker(graph).rank('a')

        assert result.is_empty
        assert result.group_score == ScoreSummary(0.0, 0)
        assert result.country_score == ScoreSummary(0.0, 0)
        assert result.agreement_by_group == ()

    def test_unknown_entity(self, scenario_graph):
        """Test an unknown id gives an empty result instead of an error."""
        result = SimilarityRanker(scenario_graph).rank('nobody')

        assert result.is_empty
        assert result.graph_version == scenario_graph.version

    def test_rank_group_members(self, scenario_graph):
        """Test group members are ranked by agreement with their group."""
        ranking = SimilarityRanker(scenario_graph).rank_group_members('Y')

        assert [(m.entity_id, m.score, m.count) for m in ranking] == [('C', 0.7, 1), ('D', 0.7, 1)]

    def test_rank_group_members_without_relations(self):
        """Test members without group relations score zero."""
        graph = build_voting_graph(
            [{'id': 'a', 'group_id': 'X'}, {'id': 'b', 'group_id': 'X'}, {'id': 'c', 'group_id': 'Y'}],
            [{'source': 'a', 'target': 'c', 'weight': 0.9}]
        )
        ranking = SimilarityRanker(graph).rank_group_members('X')

        assert [(m.entity_id, m.score, m.count) for m in ranking] == [('a', 0.0, 0), ('b', 0.0, 0)]

    def test_agreement_frame(self, scenario_graph):
        """Test the whole-graph agreement table."""
        frame = SimilarityRanker(scenario_graph).agreement_frame()

        assert list(frame.columns) == ['entity_id', 'group', 'score', 'count']
        assert len(frame) == 8
        row = frame[(frame['entity_id'] == 'B') & (frame['group'] == 'Y')].iloc[0]
        assert row['score'] == pytest.approx(0.4)
        assert row['count'] == 1

    def test_agreement_frame_empty(self):
        """Test the agreement table of a graph without relations."""
        graph = build_voting_graph([{'id': 'a'}], [])
        frame = SimilarityRanker(graph).agreement_frame()

        assert frame.empty
        assert list(frame.columns) == ['entity_id', 'group', 'score', 'count']


class TestSubjectSimilarity:
    """Test cases for per-subject similarity."""

    @pytest.fixture
    def subject_graphs(self):
        entities = [
            {'id': 'A', 'group_id': 'X'},
            {'id': 'B', 'group_id': 'X'},
            {'id': 'C', 'group_id': 'Y'},
        ]
        return {
            'budget': build_voting_graph(entities, [{'source': 'A', 'target': 'B', 'weight': 0.6}]),
            'trade': build_voting_graph(entities, [
                {'source': 'A', 'target': 'B', 'weight': 0.9},
                {'source': 'A', 'target': 'C', 'weight': 0.1},
            ]),
            'fisheries': build_voting_graph(entities, [{'source': 'A', 'target': 'C', 'weight': 0.8}]),
            'agriculture': build_voting_graph(entities, []),
        }

    def test_rank_by_subject(self, subject_graphs):
        """Test subjects are ranked by own-group similarity."""
        scores = rank_by_subject(subject_graphs, 'A')

        assert [(s.subject, s.score, s.count) for s in scores] == [('trade', 0.9, 1), ('budget', 0.6, 1)]

    def test_rank_by_subject_unknown_entity(self, subject_graphs):
        """Test an unknown entity has no subject scores."""
        assert rank_by_subject(subject_graphs, 'Z') == []

    def test_subject_agreement(self, subject_graphs):
        """Test agreement by group per subject."""
        agreement = subject_agreement(subject_graphs, 'A')

        assert set(agreement) == {'budget', 'trade', 'fisheries'}
        assert [a.group for a in agreement['trade']] == ['X', 'Y']
        assert agreement['fisheries'][0].score == 0.8


if __name__ == "__main__":
    pytest.main([__file__, '-v'])
