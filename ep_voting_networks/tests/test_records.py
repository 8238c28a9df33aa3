"""Tests for the records and groups modules."""

import pytest
import numpy as np
import pandas as pd

from ep_voting_networks.src.groups import GroupCatalog
from ep_voting_networks.src.records import (
    Entity, Relation, NetworkRecordPreprocessor, coerce_weight
)


@pytest.fixture
def sample_tables():
    """Create node and edge tables with upstream column names."""
    nodes = pd.DataFrame({
        'Id': [1, 2, 3, 4, 2],
        'FullName': ['Anna A', 'Boris B', 'Clara C', 'Dirk D', 'Boris Duplicate'],
        'Country': ['France', 'France', 'Germany', None, 'France'],
        'GroupID': ['S&D', 'S&D', 'PPE', 'NonAttached', 'S&D'],
    })

    edges = pd.DataFrame({
        'Source': [1, 1, 2, 3, 4],
        'Target': [2, 3, 3, 4, 1],
        'Weight': [0.9, 0.4, 'n/a', 1.5, 0.65],
    })

    return nodes, edges


class TestEntity:
    """Test cases for Entity and Relation records."""

    def test_from_upstream_record(self):
        """Test building an entity from upstream field names."""
        entity = Entity.from_record({'Id': 7, 'FullName': 'Anna A', 'Country': 'France', 'GroupID': 'S&D'})

        assert entity.id == '7'
        assert entity.label == 'Anna A'
        assert entity.country == 'France'
        assert entity.group_id == 'S&D'
        assert entity.color == GroupCatalog.color('S&D')
        assert not entity.has_position

    def test_from_record_group_id_alias(self):
        """Test the groupId spelling is accepted."""
        entity = Entity.from_record({'id': 'a', 'groupId': 'ECR'})

        assert entity.group_id == 'ECR'
        assert entity.label == 'a'

    def test_from_record_numeric_group_id(self):
        """Test a float group code from a table with gaps reads as an integer label."""
        entity = Entity.from_record({'Id': 1, 'GroupID': 7.0, 'Country': float('nan')})

        assert entity.group_id == '7'
        assert entity.country is None

    def test_from_record_without_id(self):
        """Test a record without id is rejected."""
        with pytest.raises(ValueError):
            Entity.from_record({'label': 'nobody'})

    def test_position(self):
        """Test position is only reported when both coordinates are finite."""
        assert Entity('a', x=1.0, y=2.0).position == (1.0, 2.0)
        assert Entity('a', x=1.0).position is None
        assert not Entity('a', x=float('nan'), y=0.0).has_position

    def test_relation_key_is_unordered(self):
        """Test relation keys ignore direction."""
        assert Relation('b', 'a', 0.5).key == Relation('a', 'b', 0.9).key == ('a', 'b')
        assert Relation('a', 'b', 0.5).other('a') == 'b'

    def test_relation_missing_endpoint(self):
        """Test a relation without target is rejected."""
        with pytest.raises(ValueError):
            Relation.from_record({'source': 'a', 'weight': 0.5})

    def test_coerce_weight(self):
        """Test weights are read leniently and clipped."""
        assert coerce_weight('0.25') == 0.25
        assert coerce_weight('abc') == 0.0
        assert coerce_weight(None) == 0.0
        assert coerce_weight(float('nan')) == 0.0
        assert coerce_weight(1.7) == 1.0
        assert coerce_weight(-0.3) == 0.0


class TestNetworkRecordPreprocessor:
    """Test cases for NetworkRecordPreprocessor."""

    def test_init(self, sample_tables):
        """Test preprocessor initialization."""
        nodes, edges = sample_tables
        preprocessor = NetworkRecordPreprocessor(nodes, edges)

        assert preprocessor.nodes_raw is not None
        assert preprocessor.edges_raw is not None
        assert preprocessor.nodes is None

    def test_preprocess_nodes(self, sample_tables):
        """Test node columns are renamed and duplicate ids dropped."""
        nodes, edges = sample_tables
        preprocessor = NetworkRecordPreprocessor(nodes, edges)
        result = preprocessor.preprocess_nodes()

        assert list(result.columns) == ['id', 'label', 'country', 'group_id', 'color', 'x', 'y']
        assert list(result['id']) == ['1', '2', '3', '4']
        assert result.loc[1, 'label'] == 'Boris B'
        assert result.loc[3, 'country'] is None
        assert result.loc[0, 'color'] == GroupCatalog.color('S&D')

    def test_numeric_group_codes(self):
        """Test numeric group codes are read as text and missing groups as None."""
        nodes = pd.DataFrame({'Id': [1, 2, 3], 'GroupID': [7, None, 8], 'Country': ['France', None, 'Malta']})
        preprocessor = NetworkRecordPreprocessor(nodes, pd.DataFrame({'Source': [], 'Target': []}))
        result = preprocessor.preprocess_nodes()

        assert list(result['group_id']) == ['7', None, '8']
        assert list(result['country']) == ['France', None, 'Malta']
        assert result.loc[1, 'color'] == GroupCatalog.DEFAULT_COLOR

    def test_preprocess_edges(self, sample_tables):
        """Test edge weights are coerced into [0, 1]."""
        nodes, edges = sample_tables
        preprocessor = NetworkRecordPreprocessor(nodes, edges)
        result = preprocessor.preprocess_edges()

        assert list(result['source']) == ['1', '1', '2', '3', '4']
        assert list(result['weight']) == [0.9, 0.4, 0.0, 1.0, 0.65]

    def test_preprocess_edges_missing_columns(self):
        """Test an edge table without endpoints is rejected."""
        preprocessor = NetworkRecordPreprocessor(
            pd.DataFrame({'Id': [1]}), pd.DataFrame({'Weight': [0.5]})
        )
        with pytest.raises(ValueError):
            preprocessor.preprocess_edges()

    def test_filter_by_country(self, sample_tables):
        """Test country filtering keeps only relations inside the country."""
        nodes, edges = sample_tables
        preprocessor = NetworkRecordPreprocessor(nodes, edges)
        country_nodes, country_edges = preprocessor.filter_by_country('France')

        assert set(country_nodes['id']) == {'1', '2'}
        assert len(country_edges) == 1
        assert country_edges.loc[0, 'weight'] == 0.9

    def test_filter_by_weight(self, sample_tables):
        """Test the layout weight threshold is exclusive."""
        nodes, edges = sample_tables
        preprocessor = NetworkRecordPreprocessor(nodes, edges)

        assert list(preprocessor.filter_by_weight()['weight']) == [0.9, 1.0, 0.65]
        assert list(preprocessor.filter_by_weight(0.9)['weight']) == [1.0]

    def test_attach_positions(self, sample_tables):
        """Test positions are merged by id."""
        nodes, edges = sample_tables
        preprocessor = NetworkRecordPreprocessor(nodes, edges)
        positions = pd.DataFrame({'Id': [1, 3], 'x': [10.0, -5.0], 'y': [2.0, 4.0]})
        result = preprocessor.attach_positions(positions)

        assert result.loc[0, 'x'] == 10.0
        assert result.loc[2, 'y'] == 4.0
        assert np.isnan(result.loc[1, 'x'])

    def test_get_entities_and_relations(self, sample_tables):
        """Test conversion into records."""
        nodes, edges = sample_tables
        preprocessor = NetworkRecordPreprocessor(nodes, edges)
        nodes_pos = preprocessor.attach_positions({'1': (1.0, 2.0)})

        entities = preprocessor.get_entities(nodes_pos)
        relations = preprocessor.get_relations()

        assert [e.id for e in entities] == ['1', '2', '3', '4']
        assert entities[0].position == (1.0, 2.0)
        assert entities[1].position is None
        assert entities[3].country is None
        assert relations[0] == Relation('1', '2', 0.9)


class TestGroupCatalog:
    """Test cases for GroupCatalog."""

    def test_order_groups(self):
        """Test canonical groups come first, unknown ones alphabetically after."""
        groups = ['ECR', 'Zeta', 'S&D', 'NonAttached', 'Alpha', 'GUE/NGL', 'ECR', None]
        assert GroupCatalog.order_groups(groups) == ['GUE/NGL', 'S&D', 'ECR', 'Alpha', 'Zeta']

    def test_order_groups_custom_order(self):
        """Test a custom canonical order and exclusion list."""
        ordered = GroupCatalog.order_groups(['b', 'a', 'c'], canonical_order=['c', 'b'], exclude=())
        assert ordered == ['c', 'b', 'a']

    def test_acronym_depends_on_mandate(self):
        """Test GUE/NGL is labelled The Left from the 9th term."""
        assert GroupCatalog.acronym('GUE/NGL', 8) == 'GUE/NGL'
        assert GroupCatalog.acronym('GUE/NGL', 9) == 'The Left'
        assert GroupCatalog.acronym('PPE') == 'EPP'
        assert GroupCatalog.acronym('Unlisted') == 'Unlisted'

    def test_family(self):
        """Test successor groups share a family."""
        assert GroupCatalog.family('PSE') == GroupCatalog.family('S&D') == 'S&D'
        assert GroupCatalog.family('ECR') == 'ECR'

    def test_color_fallback(self):
        """Test unknown groups are grey."""
        assert GroupCatalog.color('Unlisted') == GroupCatalog.DEFAULT_COLOR
        assert GroupCatalog.color(None) == GroupCatalog.DEFAULT_COLOR

    def test_heatmap_endpoints(self):
        """Test the heatmap scale runs from red to green."""
        assert GroupCatalog.heatmap_hex(0.0) == '#d73027'
        assert GroupCatalog.heatmap_hex(1.0) == '#1a9850'
        assert GroupCatalog.heatmap_hex(2.0) == '#1a9850'
        assert GroupCatalog.heatmap_color(0.0) == (215, 48, 39)

    def test_text_color(self):
        """Test text color contrasts with the background."""
        assert GroupCatalog.text_color((255, 255, 255)) == '#000'
        assert GroupCatalog.text_color((0, 0, 0)) == '#fff'


if __name__ == "__main__":
    pytest.main([__file__, '-v'])
