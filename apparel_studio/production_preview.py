"""
Production preview generation through Cloudinary.

The compositing service positions overlays with a gravity plus pixel offset
model rather than percent rectangles. Each placement key has an overlay slot
calibrated for the production base width whose offset places the overlay
centre on the centre of the canvas rectangle, where the canvas centres its
content. Front/back slots are shifted by the same vertical anchors and
widened by the same presets the canvas renderer uses.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlparse

import cloudinary.utils
from PIL import ImageColor
from loguru import logger

from .config import FontConfig, GarmentConfig, OverlaySlot
from .geometry import GeometryResolver, placement_key_for
from .models import ResolvedPlacement
from .reconcile import normalize_base_color, placements_from_legacy, resolve_design


MIN_TEXT_SIZE = 12
MAX_TEXT_SIZE = 120
DEFAULT_SIZE_CONTROL = 40

CLOUDINARY_HOST = 'res.cloudinary.com'
VERSION_SEGMENT = re.compile(r'^v\d+$')
TRANSFORMATION_SEGMENT = re.compile(r'^[a-z]{1,3}_[^,]+(,[a-z]{1,3}_[^,]+)*$')


@dataclass(frozen=True)
class CloudinarySettings:
    cloud_name: Optional[str] = None
    api_key: Optional[str] = None
    api_secret: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name)

    @classmethod
    def from_config(cls, config) -> 'CloudinarySettings':
        return cls(
            cloud_name=config.CLOUDINARY_CLOUD_NAME,
            api_key=config.CLOUDINARY_API_KEY,
            api_secret=config.CLOUDINARY_API_SECRET,
        )


def to_color_literal(color: Optional[str]) -> str:
    """Convert any CSS color into the service's ``rgb:rrggbb`` form; black if unparseable."""
    try:
        red, green, blue = ImageColor.getrgb((color or '').strip())[:3]
    except ValueError:
        return 'rgb:000000'
    return f"rgb:{red:02x}{green:02x}{blue:02x}"


def extract_public_id(url: Optional[str], cloud_name: Optional[str]) -> Optional[str]:
    """
    Extract the public id of an image hosted on the given Cloudinary cloud.

    Transformation segments, the version segment and the file extension are
    stripped. Returns None for images hosted anywhere else.
    """
    if not url or not cloud_name:
        return None

    parsed = urlparse(url)
    if parsed.hostname != CLOUDINARY_HOST:
        return None

    segments = [s for s in parsed.path.split('/') if s]
    # /<cloud>/<resource_type>/<delivery_type>/...
    if len(segments) < 4 or segments[0] != cloud_name:
        return None
    rest = segments[3:]

    versions = [i for i, segment in enumerate(rest) if VERSION_SEGMENT.match(segment)]
    if versions:
        rest = rest[versions[0] + 1:]
    else:
        while len(rest) > 1 and TRANSFORMATION_SEGMENT.match(rest[0]):
            rest = rest[1:]

    if not rest:
        return None
    rest[-1] = rest[-1].rsplit('.', 1)[0] if '.' in rest[-1] else rest[-1]
    return '/'.join(rest)


class ProductionPreviewGenerator:
    """Builds a composited production preview URL for an order."""

    def __init__(self,
                 settings: CloudinarySettings,
                 resolver: GeometryResolver,
                 overlay_slots: Mapping[str, OverlaySlot],
                 garments: GarmentConfig,
                 fonts: FontConfig,
                 base_width: int = 800):
        self.settings = settings
        self.resolver = resolver
        self.overlay_slots = overlay_slots
        self.garments = garments
        self.fonts = fonts
        self.base_width = base_width
        self.base_height = resolver.canvas_height_for(base_width)

    def generate(self, order: Mapping[str, Any]) -> Optional[str]:
        """
        Build the production preview URL, or None when it cannot be produced.

        Only the front side and a single design are composited.
        """
        if not self.settings.configured:
            logger.warning("Production preview skipped: Cloudinary cloud name not configured")
            return None

        try:
            color = normalize_base_color(order)
            garment = self.garments.colors.get(color) or self.garments.colors[self.garments.default_color]
            placement = self.source_placement(order)

            transformation = [{'width': self.base_width, 'crop': 'scale'}]
            if placement is not None and placement.has_content():
                transformation.extend(self.overlay_for(placement))

            url = cloudinary.utils.cloudinary_url(
                garment.production_id,
                cloud_name=self.settings.cloud_name,
                secure=True,
                format='png',
                transformation=transformation,
            )[0]
            logger.debug(f"Production preview for order {order.get('id', '?')}: {url}")
            return url
        except Exception as e:
            logger.error(f"Failed to build production preview for order {order.get('id', '?')}: {e}")
            return None

    def source_placement(self, order: Mapping[str, Any]) -> Optional[ResolvedPlacement]:
        """
        The first non-back placement of the authoritative design shape.

        Legacy orders prefer their first design asset over the label order.
        """
        shape, placements = resolve_design(order)
        assets = order.get('designAssets') or []
        if shape == 'legacy' and assets and isinstance(assets[0], Mapping):
            from_asset = placements_from_legacy({**order, 'legacyPlacements': [], 'designAssets': [assets[0]]})
            if from_asset and from_asset[0].area != 'back':
                return from_asset[0]

        for placement in placements:
            if placement.area != 'back':
                return placement
        return None

    def slot_for(self, placement: ResolvedPlacement) -> Optional[OverlaySlot]:
        return self.overlay_slots.get(placement_key_for(placement.area))

    def slot_position(self, placement: ResolvedPlacement, slot: OverlaySlot) -> Dict[str, Any]:
        y = slot.y
        if self.resolver.is_adjustable(placement.area):
            y += self.resolver.vertical_delta_percent(placement.vertical_position) / 100 * self.base_height
        return {'gravity': slot.gravity, 'x': slot.x, 'y': round(y)}

    def overlay_center(self, placement: ResolvedPlacement, slot: OverlaySlot) -> Optional[Tuple[float, float]]:
        """Where the overlay centre lands on the base garment; None unless the slot uses centre gravity."""
        if slot.gravity != 'center':
            return None
        position = self.slot_position(placement, slot)
        return self.base_width / 2 + position['x'], self.base_height / 2 + position['y']

    def slot_width(self, placement: ResolvedPlacement, slot: OverlaySlot) -> int:
        if not self.resolver.is_adjustable(placement.area):
            return slot.width
        width_percent = slot.width / self.base_width * 100 * self.resolver.width_multiplier(placement.text_box_width)
        return round(self.resolver.clamp_width_percent(width_percent) / 100 * self.base_width)

    def font_size_for(self, placement: ResolvedPlacement, slot: OverlaySlot) -> int:
        control = placement.font_size if placement.font_size is not None else DEFAULT_SIZE_CONTROL
        size = slot.font_size * control / DEFAULT_SIZE_CONTROL
        return round(min(MAX_TEXT_SIZE, max(MIN_TEXT_SIZE, size)))

    def font_family_for(self, family: Optional[str]) -> str:
        primary = (family or '').split(',')[0].strip().strip('\'"').lower()
        return self.fonts.service_fonts.get(primary, self.fonts.default_service_font)

    def overlay_for(self, placement: ResolvedPlacement) -> List[Dict[str, Any]]:
        slot = self.slot_for(placement)
        if slot is None:
            logger.debug(f"No overlay slot for area '{placement.area}'")
            return []

        if placement.is_image:
            public_id = extract_public_id(placement.design_image_url, self.settings.cloud_name)
            if public_id is None:
                logger.warning(f"Design image not hosted on cloud '{self.settings.cloud_name}', "
                               f"production preview shows the bare garment")
                return []
            layer = {
                'overlay': {'public_id': public_id},
                'width': self.slot_width(placement, slot),
                'crop': 'fit',
            }
        else:
            layer = {
                'overlay': {
                    'font_family': self.font_family_for(placement.design_font),
                    'font_size': self.font_size_for(placement, slot),
                    'text': placement.design_text,
                },
                'color': to_color_literal(placement.design_color),
                'width': self.slot_width(placement, slot),
                'crop': 'fit',
            }

        return [layer, {'flags': 'layer_apply', **self.slot_position(placement, slot)}]
