"""
Political Group Metadata Module for EP Voting Networks.

Colors, family aliases, acronyms and display names for European Parliament
political groups, plus the canonical left-to-right ordering used by the
cohesion matrix and the group priority used to orient layouts.
"""

import logging
from typing import Optional, List, Tuple, Iterable

import numpy as np
from matplotlib.colors import LinearSegmentedColormap, to_hex

logger = logging.getLogger(__name__)


class GroupCatalog:
    """
    Lookup tables for political groups across parliamentary terms.

    Group identifiers changed names between mandates (e.g. PSE -> S&D,
    GUE/NGL -> The Left); the catalog knows which identifiers belong to the
    same family and how each one should be labelled for a given mandate.
    """

    # Pseudo-group for members without a political group
    UNATTACHED = "NonAttached"

    # Label used for entities that carry no group at all
    UNKNOWN = "Unknown"

    DEFAULT_COLOR = "#CCCCCC"

    GROUP_COLORS = {
        "PPE-DE": "#3399CC",
        "PSE": "#FF0000",
        "ALDE": "#FFD700",
        "Verts/ALE": "#009900",
        "GUE/NGL": "#800080",
        "The Left": "#800080",
        "ECR": "#000080",
        "EFD": "#24b9b9",
        "EFDD": "#24b9b9",
        "IND/DEM": "#24b9b9",
        "ENF": "#000000",
        "NI": "#808080",
        "UEN": "#FFA500",
        "PPE": "#3399CC",
        "S&D": "#FF0000",
        "Renew": "#FFD700",
        "RE": "#FFD700",
        "Greens/EFA": "#009900",
        "ID": "#000000",
        "PfE": "#000000",
        "ESN": "#8B4513",
    }

    # Canonical order: left to right politically
    CANONICAL_ORDER = [
        "GUE/NGL",
        "The Left",
        "S&D",
        "PSE",
        "Greens/EFA",
        "Verts/ALE",
        "Renew",
        "ALDE",
        "RE",
        "PPE",
        "EPP",
        "PPE-DE",
        "EPP-ED",
        "ECR",
        "ID",
        "ENF",
        "PfE",
        "EFDD",
        "NI",
        "UEN",
        "ESN",
        "IND/DEM",
    ]

    # Reference groups for layout orientation, highest priority first.
    # Members of every group in a tier are combined.
    ROTATION_PRIORITY = [
        ("GUE/NGL",),
        ("Greens/EFA", "Verts/ALE"),
        ("S&D", "PSE"),
    ]

    FAMILIES = {
        "IND/DEM": "EFDD",
        "EFD": "EFDD",
        "EFDD": "EFDD",
        "PSE": "S&D",
        "PES": "S&D",
        "S&D": "S&D",
        "GUE/NGL": "The Left",
        "The Left": "The Left",
        "PPE-DE": "EPP",
        "EPP-ED": "EPP",
        "PPE": "EPP",
        "EPP": "EPP",
        "ENF": "ID",
        "ID": "ID",
        "PfE": "ID",
    }

    ACRONYMS = {
        "Verts/ALE": "Greens/EFA",
        "PPE": "EPP",
        "PPE-DE": "EPP-ED",
        "NonAttached": "Non attached",
        "PSE": "PES",
    }

    DISPLAY_NAMES = {
        "Verts/ALE": "Greens/European Free Alliance",
        "Greens/EFA": "Greens/European Free Alliance",
        "S&D": "Progressive Alliance of Socialists and Democrats (S&D)",
        "PSE": "Party of European Socialists (PSE)",
        "ALDE": "Alliance of Liberals and Democrats for Europe (ALDE)",
        "RE": "Renew Europe (RE)",
        "Renew": "Renew Europe",
        "PPE": "European People's Party (EPP)",
        "EPP": "European People's Party (EPP)",
        "PPE-DE": "European People's Party - European Democrats (EPP-ED)",
        "EPP-ED": "European People's Party - European Democrats (EPP-ED)",
        "ECR": "European Conservatives and Reformists (ECR)",
        "EFDD": "Europe of Freedom and Direct Democracy (EFDD)",
        "ENF": "Europe of Nations and Freedom (ENF)",
        "ID": "Identity and Democracy (ID)",
        "PfE": "Patriots for Europe (PfE)",
        "ESN": "Europe of Sovereign Nations (ESN)",
        "UEN": "Union for Europe of the Nations (UEN)",
        "IND/DEM": "Independence/Democracy (IND/DEM)",
        "NI": "Non-Inscrits",
        "NonAttached": "Non attached",
    }

    # GUE/NGL was renamed "The Left" from the 9th term onwards
    LEFT_RENAME_MANDATE = 9

    # Red -> orange -> yellow -> green, used for cohesion heatmap cells
    HEATMAP_COLORS = [
        "#d73027",
        "#f46d43",
        "#fdae61",
        "#fee08b",
        "#ffffbf",
        "#e6f598",
        "#abdda4",
        "#66c2a5",
        "#1a9850",
    ]

    _heatmap_cmap = LinearSegmentedColormap.from_list("red_green", HEATMAP_COLORS)

    @classmethod
    def color(cls, group_id: Optional[str]) -> str:
        """Get the hex color for a group, falling back to grey."""
        return cls.GROUP_COLORS.get(group_id, cls.DEFAULT_COLOR)

    @classmethod
    def family(cls, group_id: str) -> str:
        """
        Normalize a group identifier to its family.

        Groups that succeeded one another across mandates share a family, so
        a member moving from PSE to S&D is not a change of group.

        Args:
            group_id: Group identifier.

        Returns:
            Canonical family name, or the identifier itself if it has none.
        """
        return cls.FAMILIES.get(group_id, group_id)

    @classmethod
    def acronym(cls, group_id: str, mandate: Optional[int] = None) -> str:
        """Short label for a group, as shown in heatmap headers."""
        if group_id == "GUE/NGL":
            if mandate is not None and mandate >= cls.LEFT_RENAME_MANDATE:
                return "The Left"
            return "GUE/NGL"
        return cls.ACRONYMS.get(group_id, group_id)

    @classmethod
    def display_name(cls, group_id: str, mandate: Optional[int] = None) -> str:
        """Full name of a group for the given mandate."""
        if group_id == "GUE/NGL":
            if mandate is not None and mandate < cls.LEFT_RENAME_MANDATE:
                return "European United Left/Nordic Green Left (GUE/NGL)"
            return "The Left"
        if group_id == "The Left":
            return "The Left"
        return cls.DISPLAY_NAMES.get(group_id, group_id)

    @classmethod
    def order_groups(
        cls,
        groups: Iterable[str],
        canonical_order: Optional[List[str]] = None,
        exclude: Iterable[str] = (UNATTACHED,)
    ) -> List[str]:
        """
        Sort groups left to right.

        Groups in the canonical list come first in that order; the rest are
        appended alphabetically. Excluded groups are dropped.

        Args:
            groups: Distinct group identifiers (duplicates are collapsed).
            canonical_order: Preferred ordering; defaults to CANONICAL_ORDER.
            exclude: Groups to leave out entirely.

        Returns:
            Ordered list of group identifiers.
        """
        if canonical_order is None:
            canonical_order = cls.CANONICAL_ORDER
        rank = {group: i for i, group in enumerate(canonical_order)}
        excluded = set(exclude)

        distinct = {g for g in groups if g and g not in excluded}
        known = sorted((g for g in distinct if g in rank), key=rank.__getitem__)
        unknown = sorted(g for g in distinct if g not in rank)
        return known + unknown

    @classmethod
    def heatmap_color(cls, intensity: float) -> Tuple[int, int, int]:
        """
        Map an intensity in [0, 1] to an RGB triple on the red-green scale.

        Args:
            intensity: Value to map; clipped to [0, 1].

        Returns:
            (r, g, b) tuple of ints in 0-255.
        """
        t = float(np.clip(intensity, 0.0, 1.0))
        r, g, b, _ = cls._heatmap_cmap(t)
        return int(round(r * 255)), int(round(g * 255)), int(round(b * 255))

    @classmethod
    def heatmap_hex(cls, intensity: float) -> str:
        """Hex form of heatmap_color."""
        return to_hex(cls._heatmap_cmap(float(np.clip(intensity, 0.0, 1.0))))

    @staticmethod
    def text_color(rgb: Tuple[int, int, int]) -> str:
        """Black or white text, whichever reads better on the given background."""
        r, g, b = rgb
        luminance = (0.299 * r + 0.587 * g + 0.114 * b) / 255
        return "#000" if luminance > 0.5 else "#fff"
