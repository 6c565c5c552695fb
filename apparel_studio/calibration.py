"""
Geometry calibration between the canvas renderer and the production preview.

For every placement area, vertical position and width preset this compares
where the canvas centres content in its rectangle at the production base size
with where the overlay slot centres it, along with the two widths. It can also
draw a guide sheet of all rectangles for a visual check.
"""

import csv
import math
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import List, Optional

from PIL import Image, ImageDraw

from .geometry import GeometryResolver
from .models import AREAS, TEXT_BOX_WIDTHS, VERTICAL_POSITIONS, ResolvedPlacement
from .production_preview import ProductionPreviewGenerator
from .render import DARK_GARMENT_COLORS, GUIDE_RADIUS, LIGHT_GARMENT_COLORS, draw_dashed_rectangle


@dataclass
class AlignmentResult:
    """One area/vertical/preset comparison, in production pixels."""
    area: str
    vertical_position: str
    text_box_width: str
    canvas_center_x: float
    canvas_center_y: float
    overlay_center_x: Optional[float]
    overlay_center_y: Optional[float]
    canvas_width: float
    overlay_width: float

    @property
    def center_delta(self) -> float:
        # Slots that do not position by centre cannot be compared
        if self.overlay_center_x is None or self.overlay_center_y is None:
            return math.inf
        return max(abs(self.canvas_center_x - self.overlay_center_x),
                   abs(self.canvas_center_y - self.overlay_center_y))

    @property
    def width_delta(self) -> float:
        return abs(self.canvas_width - self.overlay_width)

    def within(self, tolerance: float) -> bool:
        return self.center_delta <= tolerance and self.width_delta <= tolerance


def check_overlay_alignment(resolver: GeometryResolver,
                            generator: ProductionPreviewGenerator) -> List[AlignmentResult]:
    width = generator.base_width
    height = generator.base_height
    results = []

    for area in AREAS:
        slot = generator.slot_for(ResolvedPlacement(id='slot', area=area, vertical_position='center',
                                                    design_type='text'))
        if slot is None:
            continue

        for vertical in VERTICAL_POSITIONS:
            for preset in TEXT_BOX_WIDTHS:
                rect = resolver.resolve(area, vertical, preset, width, height)
                if rect is None:
                    continue
                placement = ResolvedPlacement(
                    id='calibration',
                    area=area,
                    vertical_position=vertical,
                    design_type='text',
                    text_box_width=preset,
                )
                center = generator.overlay_center(placement, slot) or (None, None)
                results.append(AlignmentResult(
                    area=area,
                    vertical_position=vertical,
                    text_box_width=preset,
                    canvas_center_x=round(rect.center_x, 2),
                    canvas_center_y=round(rect.center_y, 2),
                    overlay_center_x=center[0],
                    overlay_center_y=center[1],
                    canvas_width=round(rect.width, 2),
                    overlay_width=generator.slot_width(placement, slot),
                ))

    return results


def write_alignment_csv(results: List[AlignmentResult], csv_path: Path) -> Path:
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    with open(csv_path, 'w', newline='') as csvfile:
        fieldnames = list(asdict(results[0]).keys()) + ['center_delta', 'width_delta'] if results else []
        writer = csv.DictWriter(csvfile, fieldnames=fieldnames)
        writer.writeheader()
        for result in results:
            writer.writerow({**asdict(result), 'center_delta': result.center_delta, 'width_delta': result.width_delta})
    return csv_path


def render_calibration_sheet(resolver: GeometryResolver,
                             width: int,
                             dark: bool = False,
                             base_image: Optional[Image.Image] = None) -> Image.Image:
    """Draw every placement rectangle (all verticals, standard width) on one canvas."""
    height = resolver.canvas_height_for(width)
    sheet = Image.new('RGBA', (width, height), (15, 23, 42, 255) if dark else (255, 255, 255, 255))
    if base_image is not None:
        sheet.alpha_composite(base_image.convert('RGBA').resize((width, height)))

    palette = DARK_GARMENT_COLORS if dark else LIGHT_GARMENT_COLORS
    draw = ImageDraw.Draw(sheet)

    for area in AREAS:
        verticals = VERTICAL_POSITIONS if resolver.is_adjustable(area) else ('upper',)
        for vertical in verticals:
            rect = resolver.resolve(area, vertical, 'standard', width, height)
            if rect is None:
                continue
            color = palette['active'] if vertical == 'center' else palette['guide']
            draw_dashed_rectangle(draw, (rect.x, rect.y, rect.right, rect.bottom), color, 2, (6, 4), GUIDE_RADIUS)

    return sheet
