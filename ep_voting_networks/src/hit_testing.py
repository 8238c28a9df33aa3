"""
Spatial Hit Testing Module for EP Voting Networks.

Resolves pointer positions on a rendered canvas to legislators. The
renderer owns the pan/zoom state; it is passed in as a ViewTransform for
every query.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Callable, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from .records import Entity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ViewTransform:
    """
    Affine map from graph space to screen space.

    screen = graph * scale + offset, on both axes.
    """

    offset_x: float = 0.0
    offset_y: float = 0.0
    scale: float = 1.0

    ZOOM_STEP = 1.5
    MIN_SCALE = 0.01
    MAX_SCALE = 10.0

    def __post_init__(self):
        if not (self.scale > 0 and math.isfinite(self.scale)):
            raise ValueError(f"scale must be a positive finite number, got {self.scale}")

    def to_graph(self, screen_x: float, screen_y: float) -> Tuple[float, float]:
        """Inverse-map a screen point into graph space."""
        return (screen_x - self.offset_x) / self.scale, (screen_y - self.offset_y) / self.scale

    def to_screen(self, graph_x: float, graph_y: float) -> Tuple[float, float]:
        """Map a graph-space point onto the screen."""
        return graph_x * self.scale + self.offset_x, graph_y * self.scale + self.offset_y

    @classmethod
    def fit(
        cls,
        entities: Sequence[Entity],
        width: float,
        height: float,
        margin: float = 0.1,
        min_scale: float = MIN_SCALE,
        max_scale: float = MAX_SCALE
    ) -> "ViewTransform":
        """
        Transform that fits every positioned entity on a canvas.

        Args:
            entities: Entities to fit; unpositioned ones are ignored.
            width: Canvas width in pixels.
            height: Canvas height in pixels.
            margin: Fraction of the canvas left free on each side.
            min_scale: Lower bound on the scale.
            max_scale: Upper bound on the scale.

        Returns:
            ViewTransform centring the layout extent on the canvas. The
            identity transform when nothing is positioned.
        """
        coords = np.array([[e.x, e.y] for e in entities if e.has_position], dtype=float)
        if len(coords) == 0:
            return cls()

        lo, hi = coords.min(axis=0), coords.max(axis=0)
        # A single point (or a line) still gets a unit extent
        extent = np.maximum(hi - lo, 1.0)
        center = (lo + hi) / 2

        available_w = width * (1 - 2 * margin)
        available_h = height * (1 - 2 * margin)
        scale = min(available_w / extent[0], available_h / extent[1])
        scale = float(np.clip(scale, min_scale, max_scale))

        return cls(
            offset_x=width / 2 - scale * center[0],
            offset_y=height / 2 - scale * center[1],
            scale=scale,
        )

    def zoomed(
        self,
        factor: float,
        min_scale: float = MIN_SCALE,
        max_scale: float = MAX_SCALE
    ) -> "ViewTransform":
        """New transform with the scale multiplied by factor and clamped; offsets are kept."""
        scale = float(np.clip(self.scale * factor, min_scale, max_scale))
        return ViewTransform(self.offset_x, self.offset_y, scale)

    def zoom_in(self, max_scale: float = MAX_SCALE) -> "ViewTransform":
        return self.zoomed(self.ZOOM_STEP, max_scale=max_scale)

    def zoom_out(self, min_scale: float = MIN_SCALE) -> "ViewTransform":
        """Zoom out one step, never below min_scale (usually the fitted scale)."""
        return self.zoomed(1 / self.ZOOM_STEP, min_scale=min_scale)


def node_radius(
    n_entities: int,
    base: float = 15.0,
    min_radius: float = 3.0,
    max_radius: float = 15.0,
    ref_count: int = 700,
    exponent: float = -0.4
) -> float:
    """
    Graph-space node radius for a graph of n_entities.

    r(n) = clamp(min_radius, max_radius, base * (n / ref_count) ** exponent).
    With a negative exponent denser graphs get smaller nodes.

    Args:
        n_entities: Total number of entities in the graph.
        base: Radius at ref_count entities.
        min_radius: Lower clamp.
        max_radius: Upper clamp.
        ref_count: Reference entity count.
        exponent: Power applied to n / ref_count; must be <= 0.

    Returns:
        Radius in graph units.
    """
    if exponent > 0:
        raise ValueError(f"exponent must be <= 0 so the radius never grows with n, got {exponent}")
    if n_entities <= 0:
        return max_radius
    radius = base * (n_entities / ref_count) ** exponent
    return min(max_radius, max(min_radius, radius))


class SpatialHitTester:
    """
    Finds the entity under a pointer.

    An entity is hit when its distance from the inverse-mapped pointer is
    strictly below r(n) / scale, n being the number of entities given.

    Strategies:
        'first': the first hit in entity order (default, matches what the
            canvas renderers have always done).
        'nearest': the closest hit; ties go to the earlier entity.

    Up to index_threshold entities are scanned linearly; larger sets use a
    k-d tree with the same results.
    """

    STRATEGIES = ('first', 'nearest')

    def __init__(
        self,
        entities: Sequence[Entity],
        radius_fn: Optional[Callable[[int], float]] = None,
        strategy: str = 'first',
        index_threshold: int = 1000,
        min_screen_radius: float = 0.0
    ):
        """
        Initialize hit tester for a fixed set of oriented entities.

        Args:
            entities: Entities in render order; unpositioned ones are never hit.
            radius_fn: r(n) in graph units; defaults to node_radius.
            strategy: 'first' or 'nearest'.
            index_threshold: Entity count above which a k-d tree is used.
            min_screen_radius: Smallest hit radius in screen pixels.
        """
        if strategy not in self.STRATEGIES:
            raise ValueError(f"Unknown hit strategy '{strategy}', expected one of {self.STRATEGIES}")

        self.entities = list(entities)
        self.strategy = strategy
        self.min_screen_radius = min_screen_radius
        self.radius = (radius_fn or node_radius)(len(self.entities))

        positioned = [e for e in self.entities if e.has_position]
        self._positioned = positioned
        self._coords = np.array([[e.x, e.y] for e in positioned], dtype=float).reshape(-1, 2)

        self._tree = None
        if len(positioned) > index_threshold:
            self._tree = cKDTree(self._coords)
            logger.debug(f"Built k-d tree over {len(positioned)} entities")

        if len(positioned) < len(self.entities):
            logger.debug(f"{len(self.entities) - len(positioned)} entities have no position")

    def hit_radius(self, transform: ViewTransform) -> float:
        """Hit radius in graph units under the given transform."""
        return max(self.radius, self.min_screen_radius) / transform.scale

    def _candidates(self, point: np.ndarray, radius: float) -> Tuple[np.ndarray, np.ndarray]:
        """Indices of entities strictly within radius, ascending, and their distances."""
        if self._tree is not None:
            idx = np.array(sorted(self._tree.query_ball_point(point, radius)), dtype=int)
        else:
            idx = np.arange(len(self._positioned))
        if len(idx) == 0:
            return idx, np.empty(0)
        dist = np.hypot(self._coords[idx, 0] - point[0], self._coords[idx, 1] - point[1])
        inside = dist < radius
        return idx[inside], dist[inside]

    def hit_test(self, screen_x: float, screen_y: float, transform: ViewTransform) -> Optional[Entity]:
        """
        Entity under a screen point.

        Args:
            screen_x: Pointer x in canvas pixels.
            screen_y: Pointer y in canvas pixels.
            transform: Current pan/zoom state.

        Returns:
            The hit entity, or None.
        """
        if not self._positioned:
            return None
        if not (math.isfinite(screen_x) and math.isfinite(screen_y)):
            return None

        point = np.array(transform.to_graph(screen_x, screen_y))
        idx, dist = self._candidates(point, self.hit_radius(transform))
        if len(idx) == 0:
            return None

        if self.strategy == 'nearest':
            return self._positioned[idx[np.argmin(dist)]]
        return self._positioned[idx[0]]

    def hit_test_id(self, screen_x: float, screen_y: float, transform: ViewTransform) -> Optional[str]:
        """Id of the entity under a screen point, or None."""
        entity = self.hit_test(screen_x, screen_y, transform)
        return entity.id if entity is not None else None
