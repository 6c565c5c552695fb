"""
Placement geometry for the Apparel Studio service.

This module handles:
- Mapping placement areas onto geometry table keys
- Applying the vertical-position anchor and text width preset to front/back
- Converting percent rectangles into pixel rectangles for a canvas size

The anchor and width helpers are also used by the production preview
generator so both renderers place content from the same numbers.
"""

from functools import lru_cache
from typing import Optional

from loguru import logger

from .config import GeometryConfig, PlacementRect


AREA_TO_PLACEMENT_KEY = {
    'left_chest': 'chest_left',
    'right_chest': 'chest_right',
}


class PixelRect:
    """Represents a position and size on the canvas."""

    def __init__(self, x: float, y: float, width: float, height: float):
        self.x = x
        self.y = y
        self.width = width
        self.height = height

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def scaled(self, factor: float) -> 'PixelRect':
        return PixelRect(self.x * factor, self.y * factor, self.width * factor, self.height * factor)

    def as_box(self):
        """Integer (left, top, right, bottom) box for Pillow."""
        return (round(self.x), round(self.y), round(self.right), round(self.bottom))

    def __eq__(self, other) -> bool:
        if not isinstance(other, PixelRect):
            return NotImplemented
        return (self.x, self.y, self.width, self.height) == (other.x, other.y, other.width, other.height)

    def __repr__(self) -> str:
        return f"PixelRect({self.x:.1f}, {self.y:.1f}, {self.width:.1f}, {self.height:.1f})"


def placement_key_for(area: str) -> str:
    """Map a placement area onto its geometry table key."""
    return AREA_TO_PLACEMENT_KEY.get(area, area)


class GeometryResolver:
    """Resolves placement areas into pixel rectangles."""

    def __init__(self, geometry: GeometryConfig, cache_size: int = 512):
        self.geometry = geometry
        self._resolve_cached = lru_cache(maxsize=cache_size)(self._resolve)

    def is_adjustable(self, area: str) -> bool:
        """Only front/back honour vertical position and width presets."""
        return area in self.geometry.adjustable_areas

    def base_rect(self, area: str) -> Optional[PlacementRect]:
        return self.geometry.placements.get(placement_key_for(area))

    def top_percent_for(self, area: str, vertical_position: Optional[str]) -> Optional[float]:
        """Top offset in percent of canvas height, after the vertical anchor override."""
        rect = self.base_rect(area)
        if rect is None:
            return None
        if not self.is_adjustable(area):
            return rect.top_percent

        anchors = self.geometry.vertical_anchors
        if vertical_position in anchors:
            return anchors[vertical_position]
        return anchors[self.geometry.default_vertical]

    def vertical_delta_percent(self, vertical_position: Optional[str]) -> float:
        """Distance of the chosen anchor from the reference (center) anchor."""
        anchors = self.geometry.vertical_anchors
        chosen = anchors.get(vertical_position, anchors[self.geometry.default_vertical])
        return chosen - anchors[self.geometry.reference_vertical]

    def width_multiplier(self, text_box_width: Optional[str]) -> float:
        preset = text_box_width or self.geometry.default_width_preset
        return self.geometry.width_multipliers.get(preset, 1.0)

    def clamp_width_percent(self, width_percent: float) -> float:
        return min(self.geometry.max_width_percent, max(self.geometry.min_width_percent, width_percent))

    def width_percent_for(self, area: str, text_box_width: Optional[str]) -> Optional[float]:
        """Width in percent of canvas width, after the preset multiplier and clamp."""
        rect = self.base_rect(area)
        if rect is None:
            return None
        if not self.is_adjustable(area):
            return rect.width_percent
        return self.clamp_width_percent(rect.width_percent * self.width_multiplier(text_box_width))

    def resolve(self,
                area: str,
                vertical_position: Optional[str],
                text_box_width: Optional[str],
                width: float,
                height: float) -> Optional[PixelRect]:
        """
        Resolve a placement into pixel coordinates for a canvas size.

        Returns None when the area has no geometry; callers skip the placement.
        """
        if not self.is_adjustable(area):
            # vertical position and width preset are ignored off front/back
            vertical_position = None
            text_box_width = None
        return self._resolve_cached(area, vertical_position, text_box_width, width, height)

    def _resolve(self, area, vertical_position, text_box_width, width, height) -> Optional[PixelRect]:
        rect = self.base_rect(area)
        if rect is None:
            logger.debug(f"No geometry for placement area '{area}', skipping")
            return None

        top_percent = self.top_percent_for(area, vertical_position)
        width_percent = self.width_percent_for(area, text_box_width)

        pixel_width = width_percent / 100 * width
        pixel_height = rect.height_percent / 100 * height
        x = rect.left_percent / 100 * width
        if rect.centered:
            x -= pixel_width / 2
        y = top_percent / 100 * height

        return PixelRect(x, y, pixel_width, pixel_height)

    def canvas_height_for(self, width: float) -> int:
        return round(width * self.geometry.aspect_ratio)
