"""
Layout Orientation Module for EP Voting Networks.

Force-directed layouts come back in an arbitrary rotation. Rotating each
layout so that a reference group sits at a fixed angle from the centre gives
every selection the same left-to-right reading.

The layout itself is computed elsewhere; this module only applies the
coordinates it receives and orients them.
"""

import logging
import math
from dataclasses import replace
from typing import Optional, List, Tuple, Mapping, Sequence, Callable, Iterable, Union

import numpy as np

from .groups import GroupCatalog
from .records import Entity

logger = logging.getLogger(__name__)

Position = Tuple[float, float]

# Layout collaborator: graph in, position per entity id out
LayoutProvider = Callable[..., Mapping[str, Position]]

Reference = Union[Callable[[Entity], bool], Iterable[str], str, None]


def apply_positions(
    entities: Sequence[Entity],
    positions: Mapping[str, Position]
) -> List[Entity]:
    """
    Attach layout coordinates to entities.

    Args:
        entities: Entities to position.
        positions: Mapping from entity id to (x, y).

    Returns:
        New entities; those without a position in the mapping keep their
        current coordinates.
    """
    result = []
    n_missing = 0
    for entity in entities:
        position = positions.get(entity.id)
        if position is None:
            n_missing += 1
            result.append(entity)
        else:
            result.append(replace(entity, x=float(position[0]), y=float(position[1])))

    if n_missing:
        logger.warning(f"No layout position for {n_missing} of {len(entities)} entities")
    return result


def layout_entities(graph, provider: LayoutProvider) -> List[Entity]:
    """Run a layout collaborator on a graph and apply its positions."""
    return apply_positions(graph.entities, provider(graph))


class LayoutOrientationNormalizer:
    """
    Rotates a layout so a reference subgroup points at a target angle.

    The rotation is rigid and centred on the centroid of all entities, so
    pairwise distances and the global centroid are preserved. Normalizing an
    already normalized layout leaves it in place (the recomputed angle is the
    target), but reapplying a previously computed angle is not idempotent.
    """

    def __init__(
        self,
        target_angle: float = math.pi,
        priority: Optional[List[Tuple[str, ...]]] = None
    ):
        """
        Initialize normalizer.

        Args:
            target_angle: Angle (radians from +x) the reference subgroup
                should end up at; pi puts it on the left.
            priority: Tiers of reference groups, highest first, used when no
                explicit reference is given. Defaults to
                GroupCatalog.ROTATION_PRIORITY.
        """
        self.target_angle = target_angle
        self.priority = priority if priority is not None else GroupCatalog.ROTATION_PRIORITY

        # Populated by normalize()
        self.reference_group = None
        self.rotation_angle = None

    def find_reference_group(self, entities: Sequence[Entity]) -> Optional[Tuple[str, Tuple[str, ...]]]:
        """
        Pick the reference groups for a set of entities.

        Args:
            entities: Entities to inspect.

        Returns:
            Tuple of (name, groups in tier) for the first tier with members,
            named after the first of its groups present; None if no tier matches.
        """
        present = {e.group_id for e in entities}
        for tier in self.priority:
            found = [g for g in tier if g in present]
            if found:
                return found[0], tuple(tier)
        return None

    def _reference_predicate(
        self,
        entities: Sequence[Entity],
        reference: Reference
    ) -> Optional[Callable[[Entity], bool]]:
        if callable(reference):
            self.reference_group = getattr(reference, '__name__', 'custom')
            return reference

        if reference is None:
            found = self.find_reference_group(entities)
            if found is None:
                return None
            self.reference_group, groups = found
        elif isinstance(reference, str):
            self.reference_group, groups = reference, (reference,)
        else:
            groups = tuple(reference)
            self.reference_group = groups[0] if groups else None

        wanted = set(groups)
        return lambda e: e.group_id in wanted

    def normalize(
        self,
        entities: Sequence[Entity],
        reference: Reference = None
    ) -> List[Entity]:
        """
        Rotate positions so the reference subgroup sits at the target angle.

        Args:
            entities: Positioned entities.
            reference: Predicate over entities, a group id, an iterable of
                group ids, or None to use the priority tiers.

        Returns:
            New list of entities with rotated positions. The input is
            returned unchanged (as a list) when the reference subgroup is
            empty or its centroid coincides with the global centroid.

        Raises:
            ValueError: If an entity has no position.
        """
        self.reference_group = None
        self.rotation_angle = None

        entities = list(entities)
        if not entities:
            return entities

        unpositioned = [e.id for e in entities if not e.has_position]
        if unpositioned:
            raise ValueError(
                f"{len(unpositioned)} entities have no position (first: {unpositioned[0]}); "
                "apply a layout before normalizing"
            )

        predicate = self._reference_predicate(entities, reference)
        mask = np.array([bool(predicate(e)) for e in entities]) if predicate else np.zeros(len(entities), bool)
        if not mask.any():
            logger.info("No reference group found, keeping original layout")
            return entities

        coords = np.array([[e.x, e.y] for e in entities], dtype=float)
        center = coords.mean(axis=0)
        dx, dy = coords[mask].mean(axis=0) - center

        if dx == 0 and dy == 0:
            logger.info("Reference group centroid coincides with layout centroid, keeping original layout")
            return entities

        current_angle = math.atan2(dy, dx)
        angle = self.target_angle - current_angle
        cos, sin = math.cos(angle), math.sin(angle)
        rotation = np.array([[cos, -sin], [sin, cos]])

        rotated = (coords - center) @ rotation.T + center

        self.rotation_angle = angle
        logger.info(f"Rotated layout by {math.degrees(angle):.1f} degrees: "
                    f"{self.reference_group} ({int(mask.sum())} entities) positioned at "
                    f"{math.degrees(self.target_angle):.0f} degrees")

        return [
            replace(entity, x=float(x), y=float(y))
            for entity, (x, y) in zip(entities, rotated)
        ]


def orient_layout(
    entities: Sequence[Entity],
    reference: Reference = None,
    target_angle: float = math.pi
) -> List[Entity]:
    """
    Convenience function to orient a layout.

    Args:
        entities: Positioned entities.
        reference: Reference subgroup (see LayoutOrientationNormalizer.normalize).
        target_angle: Target angle in radians.

    Returns:
        Oriented entities.
    """
    return LayoutOrientationNormalizer(target_angle=target_angle).normalize(entities, reference)
