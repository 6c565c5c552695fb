"""
Read-only order previews: splits an order's placements into front/back
panels and renders them at one of the fixed variant layouts.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from PIL import Image
from loguru import logger

from .config import GarmentConfig
from .errors import ValidationError
from .reconcile import normalize_base_color, reconcile_placements, split_by_side
from .render import CanvasRenderer, RenderRequest


@dataclass(frozen=True)
class VariantLayout:
    canvas_width: int
    mode: str
    show_labels: bool


VARIANT_LAYOUTS: Dict[str, VariantLayout] = {
    'builder': VariantLayout(canvas_width=320, mode='full', show_labels=False),
    'detail': VariantLayout(canvas_width=300, mode='full', show_labels=True),
    'thumbnail': VariantLayout(canvas_width=140, mode='thumbnail', show_labels=False),
}
DEFAULT_VARIANT = 'detail'


@dataclass
class PreviewPanel:
    side: str
    label: Optional[str]
    request: RenderRequest

    def to_dict(self) -> Dict[str, Any]:
        return {
            'side': self.side,
            'label': self.label,
            'width': self.request.width,
            'height': self.request.height,
            'mode': self.request.mode,
            'baseImage': self.request.base_image,
            'placements': [p.to_dict() for p in self.request.placements],
        }


def resolve_base_image(garments: GarmentConfig, color: str, side: str) -> str:
    """Base garment image for a color and side, falling back to the color's generic image."""
    images = garments.colors.get(color) or garments.colors[garments.default_color]
    specific = images.back if side == 'back' else images.front
    return specific or images.fallback


def layout_for(variant: Optional[str]) -> VariantLayout:
    return VARIANT_LAYOUTS.get(variant or DEFAULT_VARIANT, VARIANT_LAYOUTS[DEFAULT_VARIANT])


class OrderPreviewComposer:
    """Builds and renders the preview panels for a stored order."""

    def __init__(self, renderer: CanvasRenderer, garments: GarmentConfig):
        self.renderer = renderer
        self.garments = garments

    def compose(self,
                order: Mapping[str, Any],
                variant: Optional[str] = None,
                show_guides: bool = False,
                active_placement_id: Optional[str] = None) -> List[PreviewPanel]:
        layout = layout_for(variant)
        height = self.renderer.resolver.canvas_height_for(layout.canvas_width)
        color = normalize_base_color(order)

        front, back = split_by_side(reconcile_placements(order))
        has_front, has_back = bool(front), bool(back)

        if variant == 'thumbnail':
            sides = ['front' if has_front or not has_back else 'back']
        else:
            sides = []
            if has_front or not has_back:
                sides.append('front')
            if has_back:
                sides.append('back')

        panels = []
        for side in sides:
            request = RenderRequest(
                base_image=resolve_base_image(self.garments, color, side),
                placements=tuple(back if side == 'back' else front),
                width=layout.canvas_width,
                height=height,
                mode=layout.mode,
                show_guides=show_guides,
                active_placement_id=active_placement_id,
            )
            panels.append(PreviewPanel(
                side=side,
                label=side.title() if layout.show_labels else None,
                request=request,
            ))
        return panels

    def panel_for(self,
                  order: Mapping[str, Any],
                  side: Optional[str] = None,
                  variant: Optional[str] = None,
                  show_guides: bool = False,
                  active_placement_id: Optional[str] = None) -> PreviewPanel:
        """The panel for one side, or the first visible panel when no side is given."""
        if side is not None and side not in ('front', 'back'):
            raise ValidationError(
                f"Unknown preview side: {side}",
                details={'side': side},
                suggestions=["Use 'front' or 'back'"]
            )

        panels = self.compose(order, variant, show_guides, active_placement_id)
        if side is None:
            return panels[0]
        for panel in panels:
            if panel.side == side:
                return panel

        # Requested side has no content; still show the bare garment
        layout = layout_for(variant)
        return PreviewPanel(
            side=side,
            label=side.title() if layout.show_labels else None,
            request=RenderRequest(
                base_image=resolve_base_image(self.garments, normalize_base_color(order), side),
                placements=(),
                width=layout.canvas_width,
                height=self.renderer.resolver.canvas_height_for(layout.canvas_width),
                mode=layout.mode,
                show_guides=show_guides,
                active_placement_id=active_placement_id,
            ),
        )

    def render_panel(self, panel: PreviewPanel, pixel_ratio: float = 1.0, timeout: Optional[float] = None) -> Image.Image:
        """Render a panel once its images have loaded, failed or timed out."""
        self.renderer.loader.wait(panel.request.image_sources(), timeout=timeout)
        logger.debug(f"Rendering {panel.side} panel at {panel.request.width}x{panel.request.height}")
        return self.renderer.render(panel.request, scale=pixel_ratio)

    def render_png(self, panel: PreviewPanel, pixel_ratio: float = 1.0, timeout: Optional[float] = None) -> bytes:
        self.renderer.loader.wait(panel.request.image_sources(), timeout=timeout)
        return self.renderer.export_bytes(panel.request, pixel_ratio, 'PNG')
