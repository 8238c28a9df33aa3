"""
Record Preprocessing Module for EP Voting Networks.

Defines the entity (legislator) and relation (voting agreement) records the
engine works on, and turns already-parsed node/edge tables from the data
loading layer into those records.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Dict, List, Tuple, Mapping, Any, Union

import numpy as np
import pandas as pd

from .groups import GroupCatalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Entity:
    """A legislator node. Positions are None until a layout has been applied."""

    id: str
    label: str = ""
    country: Optional[str] = None
    group_id: Optional[str] = None
    color: str = GroupCatalog.DEFAULT_COLOR
    x: Optional[float] = None
    y: Optional[float] = None

    @property
    def has_position(self) -> bool:
        return (
            self.x is not None and self.y is not None
            and math.isfinite(self.x) and math.isfinite(self.y)
        )

    @property
    def position(self) -> Optional[Tuple[float, float]]:
        if not self.has_position:
            return None
        return (self.x, self.y)

    @classmethod
    def from_record(cls, record: Union["Entity", Mapping[str, Any]]) -> "Entity":
        """
        Build an entity from a mapping.

        Accepts both the engine's field names and the upstream ones
        (Id, FullName, Country, GroupID) as well as ``groupId``.

        Args:
            record: Mapping with at least an id, or an Entity (returned as is).

        Returns:
            Entity instance.
        """
        if isinstance(record, Entity):
            return record

        entity_id = _first(record, 'id', 'Id')
        if entity_id is None:
            raise ValueError("Entity record has no id")
        group_id = _to_text(_first(record, 'group_id', 'groupId', 'GroupID'))
        color = _first(record, 'color')
        return cls(
            id=str(entity_id),
            label=str(_first(record, 'label', 'FullName') or entity_id),
            country=_to_text(_first(record, 'country', 'Country')),
            group_id=group_id,
            color=color or GroupCatalog.color(group_id),
            x=_to_float(_first(record, 'x')),
            y=_to_float(_first(record, 'y')),
        )


@dataclass(frozen=True)
class Relation:
    """An undirected weighted voting-agreement edge."""

    source: str
    target: str
    weight: float

    @property
    def key(self) -> Tuple[str, str]:
        """Unordered pair key (ids in lexicographic order)."""
        if self.source <= self.target:
            return (self.source, self.target)
        return (self.target, self.source)

    def other(self, entity_id: str) -> str:
        """Endpoint opposite to entity_id."""
        return self.target if self.source == entity_id else self.source

    @classmethod
    def from_record(cls, record: Union["Relation", Mapping[str, Any]]) -> "Relation":
        """Build a relation from a mapping with source/target/weight (or Source/Target/Weight)."""
        if isinstance(record, Relation):
            return record
        source = _first(record, 'source', 'Source')
        target = _first(record, 'target', 'Target')
        if source is None or target is None:
            raise ValueError("Relation record is missing an endpoint")
        return cls(
            source=str(source),
            target=str(target),
            weight=coerce_weight(_first(record, 'weight', 'Weight')),
        )


def _first(record: Mapping[str, Any], *keys: str) -> Any:
    """Value of the first key present and not missing."""
    for key in keys:
        value = record.get(key)
        if value is not None and not (isinstance(value, float) and math.isnan(value)):
            return value
    return None


def _to_text(value: Any) -> Optional[str]:
    """Label value as text; whole-number floats such as 7.0 read as "7"."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def coerce_weight(value: Any) -> float:
    """
    Read a relation weight.

    Non-numeric or missing weights read as 0.0; values are clipped to [0, 1].
    """
    weight = _to_float(value)
    if weight is None:
        return 0.0
    return min(1.0, max(0.0, weight))


class NetworkRecordPreprocessor:
    """
    Normalizes node and edge tables into entity and relation records.

    The data loading layer hands over tables that use the upstream export
    column names; this class renames, types and filters them.
    """

    NODE_COLUMNS = {
        'Id': 'id',
        'FullName': 'label',
        'Country': 'country',
        'GroupID': 'group_id',
        'groupId': 'group_id',
    }

    EDGE_COLUMNS = {
        'Source': 'source',
        'Target': 'target',
        'Weight': 'weight',
    }

    # Minimum weight (exclusive) of relations fed to the layout collaborator
    LAYOUT_MIN_WEIGHT = 0.6

    def __init__(self, nodes_df: pd.DataFrame, edges_df: pd.DataFrame):
        """
        Initialize preprocessor with parsed tables.

        Args:
            nodes_df: One row per legislator.
            edges_df: One row per pairwise agreement score.
        """
        self.nodes_raw = nodes_df.copy()
        self.edges_raw = edges_df.copy()

        # Processed data (populated by preprocessing methods)
        self.nodes = None
        self.edges = None

    def preprocess_nodes(self) -> pd.DataFrame:
        """
        Clean node data.

        Returns:
            DataFrame with id, label, country, group_id, color, x, y columns.
        """
        df = self.nodes_raw.rename(columns=self.NODE_COLUMNS)

        if 'id' not in df.columns:
            raise ValueError("Node table has no id column")

        df = df[df['id'].notna()].copy()
        df['id'] = df['id'].astype(str)

        for column in ('label', 'country', 'group_id'):
            if column not in df.columns:
                df[column] = None
        df['label'] = df['label'].fillna(df['id']).astype(str)
        for column in ('country', 'group_id'):
            values = df[column].astype(object)
            df[column] = values.where(values.notna(), None).map(_to_text, na_action='ignore').astype(object)
        df['color'] = df['group_id'].map(GroupCatalog.color)

        for column in ('x', 'y'):
            if column in df.columns:
                df[column] = pd.to_numeric(df[column], errors='coerce')
            else:
                df[column] = np.nan

        n_before = len(df)
        df = df.drop_duplicates(subset='id', keep='first')
        if len(df) < n_before:
            logger.warning(f"Dropped {n_before - len(df)} duplicate node ids")

        df = df[['id', 'label', 'country', 'group_id', 'color', 'x', 'y']].reset_index(drop=True)
        self.nodes = df
        logger.info(f"Preprocessed {len(df)} node records")
        return df

    def preprocess_edges(self) -> pd.DataFrame:
        """
        Clean edge data.

        Returns:
            DataFrame with source, target and weight in [0, 1].
        """
        df = self.edges_raw.rename(columns=self.EDGE_COLUMNS)

        missing = {'source', 'target'} - set(df.columns)
        if missing:
            raise ValueError(f"Edge table is missing columns: {sorted(missing)}")

        df = df[df['source'].notna() & df['target'].notna()].copy()
        df['source'] = df['source'].astype(str)
        df['target'] = df['target'].astype(str)

        if 'weight' not in df.columns:
            df['weight'] = 0.0
        df['weight'] = pd.to_numeric(df['weight'], errors='coerce').fillna(0.0).clip(0.0, 1.0)

        df = df[['source', 'target', 'weight']].reset_index(drop=True)
        self.edges = df
        logger.info(f"Preprocessed {len(df)} edge records")
        return df

    def preprocess_all(self) -> Dict[str, pd.DataFrame]:
        """
        Run all preprocessing steps.

        Returns:
            Dictionary with cleaned dataframes.
        """
        return {
            'nodes': self.preprocess_nodes(),
            'edges': self.preprocess_edges(),
        }

    def _ensure_processed(self):
        if self.nodes is None or self.edges is None:
            self.preprocess_all()

    def filter_by_country(self, country: str) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """
        Restrict the network to one country.

        Args:
            country: Country name as it appears in the node table.

        Returns:
            Tuple of (nodes, edges) with only that country's members and the
            relations among them.
        """
        self._ensure_processed()

        nodes = self.nodes[self.nodes['country'] == country]
        ids = set(nodes['id'])
        edges = self.edges[self.edges['source'].isin(ids) & self.edges['target'].isin(ids)]

        logger.info(f"Country filter {country}: {len(nodes)} nodes, {len(edges)} edges")
        return nodes.reset_index(drop=True), edges.reset_index(drop=True)

    def filter_by_weight(
        self,
        min_weight: Optional[float] = None,
        edges: Optional[pd.DataFrame] = None
    ) -> pd.DataFrame:
        """
        Keep edges strictly heavier than min_weight.

        Args:
            min_weight: Threshold; defaults to LAYOUT_MIN_WEIGHT.
            edges: Edge table to filter; defaults to the processed edges.

        Returns:
            Filtered edge table.
        """
        if min_weight is None:
            min_weight = self.LAYOUT_MIN_WEIGHT
        if edges is None:
            self._ensure_processed()
            edges = self.edges
        return edges[edges['weight'] > min_weight].reset_index(drop=True)

    def attach_positions(
        self,
        positions: Union[pd.DataFrame, Mapping[str, Tuple[float, float]]],
        nodes: Optional[pd.DataFrame] = None
    ) -> pd.DataFrame:
        """
        Merge precomputed layout coordinates into the node table.

        Args:
            positions: Table with id/x/y columns (or Id/x/y), or a mapping
                from id to (x, y).
            nodes: Node table; defaults to the processed nodes.

        Returns:
            Node table with x and y filled where a position is known.
        """
        if nodes is None:
            self._ensure_processed()
            nodes = self.nodes

        if isinstance(positions, pd.DataFrame):
            pos = positions.rename(columns={'Id': 'id'})[['id', 'x', 'y']].copy()
            pos['id'] = pos['id'].astype(str)
        else:
            pos = pd.DataFrame(
                [(str(k), v[0], v[1]) for k, v in positions.items()],
                columns=['id', 'x', 'y']
            )
        pos = pos.drop_duplicates(subset='id', keep='first').set_index('id')

        result = nodes.copy()
        result['x'] = pd.to_numeric(result['id'].map(pos['x']), errors='coerce')
        result['y'] = pd.to_numeric(result['id'].map(pos['y']), errors='coerce')

        n_missing = int(result['x'].isna().sum())
        if n_missing:
            logger.warning(f"{n_missing} nodes have no layout position")
        return result

    def get_entities(self, nodes: Optional[pd.DataFrame] = None) -> List[Entity]:
        """Convert a node table into Entity records."""
        if nodes is None:
            self._ensure_processed()
            nodes = self.nodes
        return [Entity.from_record(row) for row in nodes.to_dict('records')]

    def get_relations(self, edges: Optional[pd.DataFrame] = None) -> List[Relation]:
        """Convert an edge table into Relation records."""
        if edges is None:
            self._ensure_processed()
            edges = self.edges
        return [
            Relation(source=s, target=t, weight=float(w))
            for s, t, w in edges[['source', 'target', 'weight']].itertuples(index=False)
        ]
