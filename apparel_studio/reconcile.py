"""
Design representation reconciler.

Custom orders have stored their design in four shapes over time:

1. ``placements``: the canonical multi-placement list
2. ``sides``: a two-slot front/back structure with ``enabled`` flags
3. ``legacyPlacements`` + ``designAssets``: placement labels joined to assets
4. flat single-design fields directly on the order

Exactly one shape is authoritative for a record. Shapes are tried in that
order and the first one that yields placements wins; nothing below it is
read, and placements are never merged across shapes.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from .models import ResolvedPlacement, TEXT_BOX_WIDTHS, VERTICAL_POSITIONS


DEFAULT_VERTICAL = 'upper'
FALLBACK_FONT = 'Inter, system-ui, sans-serif'
FALLBACK_COLOR = '#000000'

Order = Mapping[str, Any]


def normalize_area(area: Optional[str]) -> str:
    """
    Normalize a stored placement area into one of the four canonical areas.

    Matching is substring based so historical spellings still resolve:
    ``chest_left`` and ``LeftChestPocket`` both become ``left_chest``.
    """
    value = str(area or 'front').lower()
    if 'back' in value:
        return 'back'
    if 'right' in value:
        return 'right_chest'
    if 'left' in value:
        return 'left_chest'
    return 'front'


def normalize_base_color(order: Order) -> str:
    """Garment color from ``baseColor`` or ``baseShirt.color``; only black is dark."""
    color = order.get('baseColor')
    if not color and isinstance(order.get('baseShirt'), Mapping):
        color = order['baseShirt'].get('color')
    return 'black' if str(color or '').strip().lower() == 'black' else 'white'


def _vertical(value: Optional[str], fallback: str = DEFAULT_VERTICAL) -> str:
    return value if value in VERTICAL_POSITIONS else fallback


def _width_preset(value: Optional[str]) -> Optional[str]:
    return value if value in TEXT_BOX_WIDTHS else None


def _design_type(explicit: Optional[str], image_url: Optional[str]) -> str:
    if explicit in ('text', 'image'):
        return explicit
    return 'image' if image_url else 'text'


def _font_size(*candidates) -> Optional[float]:
    for value in candidates:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
    return None


def _first(*values):
    for value in values:
        if value:
            return value
    return None


def _build(placement_id: str,
           area: str,
           vertical_position: str,
           design_type: str,
           text: Optional[str] = None,
           font: Optional[str] = None,
           color: Optional[str] = None,
           image_url: Optional[str] = None,
           font_size: Optional[float] = None,
           text_box_width: Optional[str] = None) -> ResolvedPlacement:
    """Build a placement keeping only the content set its design type selects."""
    if design_type == 'image':
        return ResolvedPlacement(
            id=placement_id,
            area=area,
            vertical_position=vertical_position,
            design_type='image',
            design_image_url=image_url or None,
        )

    return ResolvedPlacement(
        id=placement_id,
        area=area,
        vertical_position=vertical_position,
        design_type='text',
        design_text=text or '',
        design_font=font or FALLBACK_FONT,
        design_color=color or FALLBACK_COLOR,
        font_size=font_size,
        text_box_width=_width_preset(text_box_width),
    )


def placements_from_canonical(order: Order) -> List[ResolvedPlacement]:
    placements = order.get('placements') or []
    resolved = []

    for index, raw in enumerate(placements):
        if not isinstance(raw, Mapping):
            continue
        raw_id = raw.get('id')
        design_type = _design_type(raw.get('designType'), raw.get('designImageUrl'))
        resolved.append(_build(
            placement_id=f"placement-{raw_id if raw_id is not None else index}",
            area=normalize_area(raw.get('area')),
            vertical_position=_vertical(raw.get('verticalPosition')),
            design_type=design_type,
            text=raw.get('designText'),
            font=raw.get('designFont'),
            color=raw.get('designColor'),
            image_url=raw.get('designImageUrl'),
            font_size=_font_size(raw.get('fontSize'), raw.get('designFontSize')),
            text_box_width=raw.get('textBoxWidth'),
        ))

    return resolved


def placements_from_sides(order: Order) -> List[ResolvedPlacement]:
    sides = order.get('sides')
    if not isinstance(sides, Mapping):
        return []

    resolved = []
    for key in ('front', 'back'):
        side = sides.get(key)
        if not isinstance(side, Mapping) or side.get('enabled') is False:
            continue

        design_type = _design_type(side.get('designType'), side.get('designImageUrl'))
        resolved.append(_build(
            placement_id=f"{key}-side",
            area=key,
            vertical_position=_vertical(side.get('verticalPosition')),
            design_type=design_type,
            text=_first(side.get('designText'), order.get('designText')),
            font=_first(side.get('designFont'), order.get('designFont')),
            color=_first(side.get('designColor'), order.get('designColor')),
            image_url=_first(side.get('designImageUrl'), order.get('designImageUrl')),
            font_size=_font_size(side.get('designFontSize'), side.get('fontSize'),
                                 order.get('designFontSize')),
            text_box_width=_first(side.get('textBoxWidth'), order.get('textBoxWidth')),
        ))

    return resolved


def placements_from_legacy(order: Order) -> List[ResolvedPlacement]:
    legacy = [p for p in (order.get('legacyPlacements') or []) if isinstance(p, Mapping)]
    assets = [a for a in (order.get('designAssets') or []) if isinstance(a, Mapping)]
    if not legacy and not assets:
        return []

    # First asset per placement key wins
    assets_by_key: Dict[str, Mapping] = {}
    for asset in assets:
        key = asset.get('placementKey')
        if key and key not in assets_by_key:
            assets_by_key[key] = asset

    ordered_keys: List[str] = [p['placementKey'] for p in legacy if p.get('placementKey')]
    for key in assets_by_key:
        if key not in ordered_keys:
            ordered_keys.append(key)

    flat_type = order.get('designType')
    flat_vertical = _vertical(order.get('verticalPosition'))
    resolved = []

    for index, key in enumerate(ordered_keys):
        asset = assets_by_key.get(key) or {}
        if asset.get('type') in ('text', 'image'):
            design_type = asset['type']
        else:
            design_type = _design_type(flat_type, order.get('designImageUrl'))

        resolved.append(_build(
            placement_id=f"legacy-{key or index}",
            area=normalize_area(key),
            vertical_position=flat_vertical,
            design_type=design_type,
            text=_first(asset.get('text'), order.get('designText')),
            font=_first(asset.get('font'), order.get('designFont')),
            color=_first(asset.get('color'), order.get('designColor')),
            image_url=_first(asset.get('imageUrl'), order.get('designImageUrl')),
            font_size=_font_size(asset.get('fontSize'), order.get('designFontSize')),
            text_box_width=_first(asset.get('textBoxWidth'), order.get('textBoxWidth')),
        ))

    return resolved


def placements_from_flat(order: Order) -> List[ResolvedPlacement]:
    legacy = order.get('legacyPlacements') or []
    first_label = legacy[0].get('placementKey') if legacy and isinstance(legacy[0], Mapping) else None
    design_type = _design_type(order.get('designType'), order.get('designImageUrl'))

    return [_build(
        placement_id='flat-fallback',
        area=normalize_area(order.get('placement') or first_label),
        vertical_position=_vertical(order.get('verticalPosition')),
        design_type=design_type,
        text=order.get('designText'),
        font=order.get('designFont'),
        color=order.get('designColor'),
        image_url=order.get('designImageUrl'),
        font_size=_font_size(order.get('designFontSize'), order.get('fontSize')),
        text_box_width=order.get('textBoxWidth'),
    )]


# Highest precedence first
SHAPE_PRECEDENCE: Sequence[Tuple[str, Callable[[Order], List[ResolvedPlacement]]]] = (
    ('placements', placements_from_canonical),
    ('sides', placements_from_sides),
    ('legacy', placements_from_legacy),
    ('flat', placements_from_flat),
)


def resolve_design(order: Order) -> Tuple[str, List[ResolvedPlacement]]:
    """Return the authoritative shape name and its resolved placements."""
    for shape, extractor in SHAPE_PRECEDENCE:
        placements = extractor(order)
        if placements:
            logger.debug(f"Order {order.get('id', order.get('_id', '?'))}: "
                         f"{len(placements)} placement(s) from '{shape}' shape")
            return shape, placements

    # The flat extractor always yields one placement
    return 'flat', []


def detect_shape(order: Order) -> str:
    return resolve_design(order)[0]


def reconcile_placements(order: Order) -> List[ResolvedPlacement]:
    """Produce the ordered canonical placement list for a stored order."""
    return resolve_design(order)[1]


def split_by_side(placements: Sequence[ResolvedPlacement]) -> Tuple[List[ResolvedPlacement], List[ResolvedPlacement]]:
    """Split placements into (front panel, back panel); chest areas sit on the front."""
    front = [p for p in placements if p.area != 'back']
    back = [p for p in placements if p.area == 'back']
    return front, back
