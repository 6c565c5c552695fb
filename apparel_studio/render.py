"""
Canvas composition renderer for the Apparel Studio service.

This module handles:
- Drawing the background fill and the base garment image
- Overlaying each placement's image or word-wrapped text in its rectangle
- Drawing guide outlines and empty-slot labels for the design editor
- Exporting the raster as a data URL at a resolution multiplier

Rendering is a pure function of the request and the images the loader has
already delivered, so the same inputs always produce the same pixels.
"""

import base64
import io
import math
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from PIL import Image, ImageColor, ImageDraw, ImageFont
from loguru import logger

from .config import FontConfig
from .errors import RenderError
from .geometry import GeometryResolver, PixelRect
from .image_loader import ImageLoader
from .models import ResolvedPlacement


DEFAULT_FONT_SIZE_CONTROL = 40
MIN_FONT_SIZE = 12
LINE_HEIGHT = 1.15
TEXT_PADDING = 4
BACKGROUND_RADIUS = 16
GUIDE_RADIUS = 8
ELLIPSIS = '…'

MODE_SETTINGS = {
    'full': {
        'background': '#ffffff',
        'font_scale': 0.42,
        'dash': (6, 4),
        'stroke': 1.5,
        'active_stroke': 2.0,
    },
    'thumbnail': {
        'background': '#f1f5f9',
        'font_scale': 0.3,
        'dash': (3, 3),
        'stroke': 0.8,
        'active_stroke': 1.2,
    },
}

LIGHT_GARMENT_COLORS = {
    'guide': (15, 23, 42, 191),
    'active': (15, 23, 42, 255),
    'label': (15, 23, 42, 166),
}
DARK_GARMENT_COLORS = {
    'guide': (255, 255, 255, 217),
    'active': (255, 255, 255, 255),
    'label': (255, 255, 255, 217),
}


@dataclass(frozen=True)
class RenderRequest:
    """Immutable snapshot of everything a render pass needs."""
    base_image: Optional[str]
    placements: Tuple[ResolvedPlacement, ...]
    width: int
    height: int
    mode: str = 'full'
    show_guides: bool = False
    active_placement_id: Optional[str] = None

    def __post_init__(self):
        # Lists are accepted for convenience, stored as a tuple
        object.__setattr__(self, 'placements', tuple(self.placements))

    @property
    def is_dark_base(self) -> bool:
        return bool(self.base_image) and 'black' in self.base_image.lower()

    def image_sources(self) -> List[str]:
        sources = [self.base_image] if self.base_image else []
        sources.extend(p.design_image_url for p in self.placements if p.is_image and p.design_image_url)
        return sources


def compute_font_size(rect: PixelRect, mode: str, control_value: Optional[float] = None) -> float:
    """Font size from the rectangle's shorter side, scaled by the size control."""
    base = min(rect.width, rect.height)
    scale = MODE_SETTINGS.get(mode, MODE_SETTINGS['full'])['font_scale']
    requested = control_value if control_value is not None else DEFAULT_FONT_SIZE_CONTROL
    relative = max(MIN_FONT_SIZE, requested) / DEFAULT_FONT_SIZE_CONTROL
    return max(MIN_FONT_SIZE, base * scale * relative)


def parse_color(value: Optional[str], fallback=(0, 0, 0, 255)) -> Tuple[int, int, int, int]:
    if not value:
        return fallback
    try:
        rgb = ImageColor.getrgb(value.strip())
    except ValueError:
        logger.debug(f"Unrecognised color '{value}', using fallback")
        return fallback
    if len(rgb) == 3:
        return (*rgb, 255)
    return rgb


class FontCache:
    """Loads TrueType fonts by family name and pixel size."""

    def __init__(self, fonts: FontConfig):
        self.fonts = fonts
        self._cache = {}
        self._lock = threading.Lock()

    def font_file_for(self, family: Optional[str]) -> str:
        primary = (family or self.fonts.fallback_family).split(',')[0].strip().strip('\'"').lower()
        return self.fonts.local_fonts.get(primary, self.fonts.default_local_font)

    def get(self, family: Optional[str], size: float):
        font_file = self.font_file_for(family)
        pixel_size = max(1, round(size))
        key = (font_file, pixel_size)

        with self._lock:
            if key in self._cache:
                return self._cache[key]

        try:
            font = ImageFont.truetype(font_file, pixel_size)
        except OSError:
            logger.warning(f"Font file not available: {font_file}, using Pillow default")
            font = ImageFont.load_default(size=pixel_size)

        with self._lock:
            self._cache[key] = font
        return font


def wrap_text(draw: ImageDraw.ImageDraw, text: str, font, max_width: float) -> List[str]:
    """Word-wrap text to max_width, breaking words that cannot fit on their own."""
    lines: List[str] = []

    for paragraph in text.split('\n'):
        current = ''
        for word in paragraph.split():
            candidate = f"{current} {word}" if current else word
            if draw.textlength(candidate, font=font) <= max_width:
                current = candidate
                continue
            if current:
                lines.append(current)
            # Hard-break a single word wider than the box
            current = ''
            for char in word:
                if current and draw.textlength(current + char, font=font) > max_width:
                    lines.append(current)
                    current = char
                else:
                    current += char
        lines.append(current)

    return lines


def truncate_lines(draw: ImageDraw.ImageDraw, lines: List[str], font, max_width: float, max_lines: int) -> List[str]:
    """Keep the lines that fit vertically, ending the last one with an ellipsis."""
    if len(lines) <= max_lines:
        return lines
    if max_lines <= 0:
        return []

    kept = lines[:max_lines]
    last = kept[-1]
    while last and draw.textlength(last + ELLIPSIS, font=font) > max_width:
        last = last[:-1]
    kept[-1] = last.rstrip() + ELLIPSIS
    return kept


def rounded_outline(box: Tuple[float, float, float, float], radius: float = 0.0, steps: int = 6) -> List[Tuple[float, float]]:
    """Closed clockwise outline of a rectangle with circular corners, starting on the top edge."""
    left, top, right, bottom = box
    radius = max(0.0, min(radius, (right - left) / 2, (bottom - top) / 2))
    corners = [
        (right - radius, top + radius, -90),
        (right - radius, bottom - radius, 0),
        (left + radius, bottom - radius, 90),
        (left + radius, top + radius, 180),
    ]

    points = [(left + radius, top)]
    for cx, cy, start in corners:
        for step in range(steps + 1):
            angle = math.radians(start + 90 * step / steps)
            points.append((cx + radius * math.cos(angle), cy + radius * math.sin(angle)))
    points.append((left + radius, top))
    return points


def draw_dashed_rectangle(draw: ImageDraw.ImageDraw,
                          box: Tuple[float, float, float, float],
                          color,
                          width: int,
                          dash: Tuple[float, float],
                          radius: float = 0.0) -> None:
    on, off = dash
    period = on + off
    travelled = 0.0

    points = rounded_outline(box, radius)
    for (x0, y0), (x1, y1) in zip(points, points[1:]):
        length = math.hypot(x1 - x0, y1 - y0)
        if length == 0:
            continue

        # Dash pattern continues from one segment to the next
        first = int(travelled // period)
        last = int((travelled + length) // period)
        for k in range(first, last + 1):
            start = max(k * period, travelled) - travelled
            end = min(k * period + on, travelled + length) - travelled
            if end <= start:
                continue
            draw.line(
                [(x0 + (x1 - x0) * start / length, y0 + (y1 - y0) * start / length),
                 (x0 + (x1 - x0) * end / length, y0 + (y1 - y0) * end / length)],
                fill=color,
                width=width,
            )
        travelled += length


class CanvasRenderer:
    """Composes the base garment and placements onto a raster canvas."""

    def __init__(self, resolver: GeometryResolver, fonts: FontConfig, loader: ImageLoader):
        self.resolver = resolver
        self.fonts = FontCache(fonts)
        self.loader = loader

    def renderable_placements(self, request: RenderRequest, scale: float = 1.0) -> List[Tuple[ResolvedPlacement, PixelRect]]:
        """Placements with a geometry rectangle; unmapped areas are skipped."""
        entries = []
        for placement in request.placements:
            rect = self.resolver.resolve(
                placement.area,
                placement.vertical_position,
                placement.text_box_width,
                request.width,
                request.height,
            )
            if rect is None:
                continue
            entries.append((placement, rect.scaled(scale) if scale != 1.0 else rect))
        return entries

    def render(self, request: RenderRequest, scale: float = 1.0) -> Image.Image:
        """Render the request; scale multiplies the output resolution."""
        if request.width <= 0 or request.height <= 0:
            raise RenderError(
                f"Invalid canvas size: {request.width}x{request.height}",
                details={'width': request.width, 'height': request.height}
            )
        if request.mode not in MODE_SETTINGS:
            raise RenderError(f"Unknown render mode: {request.mode}", details={'mode': request.mode})

        width = round(request.width * scale)
        height = round(request.height * scale)
        settings = MODE_SETTINGS[request.mode]

        canvas = Image.new('RGBA', (width, height), (0, 0, 0, 0))
        background = ImageDraw.Draw(canvas)
        background.rounded_rectangle(
            (0, 0, width - 1, height - 1),
            radius=round(BACKGROUND_RADIUS * scale),
            fill=parse_color(settings['background']),
        )

        base = self.loader.request(request.base_image)
        if base is not None:
            canvas.alpha_composite(base.resize((width, height), Image.Resampling.LANCZOS))

        palette = DARK_GARMENT_COLORS if request.is_dark_base else LIGHT_GARMENT_COLORS

        for placement, rect in self.renderable_placements(request, scale):
            layer = Image.new('RGBA', (width, height), (0, 0, 0, 0))
            self._draw_placement(layer, placement, rect, request, scale, palette)
            canvas.alpha_composite(layer)

        return canvas

    def _draw_placement(self,
                        layer: Image.Image,
                        placement: ResolvedPlacement,
                        rect: PixelRect,
                        request: RenderRequest,
                        scale: float,
                        palette: dict) -> None:
        settings = MODE_SETTINGS[request.mode]
        draw = ImageDraw.Draw(layer)
        is_active = placement.id == request.active_placement_id

        if request.show_guides:
            stroke = settings['active_stroke'] if is_active else settings['stroke']
            draw_dashed_rectangle(
                draw,
                (rect.x, rect.y, rect.right, rect.bottom),
                palette['active'] if is_active else palette['guide'],
                max(1, round(stroke * scale)),
                tuple(d * scale for d in settings['dash']),
                radius=GUIDE_RADIUS * scale,
            )

        if placement.is_image:
            image = self.loader.request(placement.design_image_url)
            if image is not None:
                left, top, right, bottom = rect.as_box()
                if right > left and bottom > top:
                    layer.alpha_composite(image.resize((right - left, bottom - top), Image.Resampling.LANCZOS),
                                          dest=(left, top))
        elif placement.is_text and placement.design_text:
            font_size = compute_font_size(rect.scaled(1 / scale), request.mode, placement.font_size) * scale
            self._draw_text_block(
                draw,
                placement.design_text,
                rect,
                self.fonts.get(placement.design_font, font_size),
                font_size,
                parse_color(placement.design_color),
                padding=TEXT_PADDING * scale,
            )

        if request.show_guides and not placement.has_content():
            label_size = compute_font_size(rect.scaled(1 / scale), request.mode) * 0.5 * scale
            self._draw_text_block(
                draw,
                'Placement',
                rect,
                self.fonts.get(None, label_size),
                label_size,
                palette['label'],
                padding=0,
            )

    def _draw_text_block(self,
                         draw: ImageDraw.ImageDraw,
                         text: str,
                         rect: PixelRect,
                         font,
                         font_size: float,
                         fill,
                         padding: float) -> None:
        inner_width = max(1.0, rect.width - 2 * padding)
        inner_height = max(1.0, rect.height - 2 * padding)
        line_height = font_size * LINE_HEIGHT

        lines = wrap_text(draw, text, font, inner_width)
        max_lines = max(1, int(inner_height // line_height))
        lines = truncate_lines(draw, lines, font, inner_width, max_lines)

        block_height = line_height * len(lines)
        y = rect.y + padding + (inner_height - block_height) / 2 + line_height / 2
        for line in lines:
            draw.text((rect.center_x, y), line, font=font, fill=fill, anchor='mm')
            y += line_height

    def export(self, request: RenderRequest, pixel_ratio: float = 2.0, image_format: str = 'PNG') -> str:
        """Serialize a render to a data URL at pixel_ratio times the canvas size."""
        data = self.export_bytes(request, pixel_ratio, image_format)
        mime = f"image/{image_format.lower()}"
        return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"

    def export_bytes(self, request: RenderRequest, pixel_ratio: float = 2.0, image_format: str = 'PNG') -> bytes:
        image = self.render(request, scale=pixel_ratio)
        if image_format.upper() in ('JPEG', 'JPG'):
            image_format = 'JPEG'
            flattened = Image.new('RGB', image.size, (255, 255, 255))
            flattened.paste(image, mask=image.split()[3])
            image = flattened

        buffer = io.BytesIO()
        image.save(buffer, image_format)
        return buffer.getvalue()


class LivePreview:
    """
    Interactive preview surface.

    Holds the latest request snapshot and re-renders when an image it still
    references finishes loading. Loads for sources the current snapshot no
    longer uses are ignored. Disposing the surface abandons pending loads.
    """

    def __init__(self,
                 resolver: GeometryResolver,
                 fonts: FontConfig,
                 loader_factory: Callable[[Callable[[str], None]], ImageLoader],
                 on_frame: Optional[Callable[[Image.Image], None]] = None):
        self.loader = loader_factory(self._image_ready)
        self.renderer = CanvasRenderer(resolver, fonts, self.loader)
        self.on_frame = on_frame
        self._request: Optional[RenderRequest] = None
        self._frame: Optional[Image.Image] = None
        self._lock = threading.Lock()

    @property
    def current_frame(self) -> Optional[Image.Image]:
        return self._frame

    @property
    def request(self) -> Optional[RenderRequest]:
        return self._request

    def update(self, request: RenderRequest) -> Image.Image:
        """Swap in a new snapshot and render it immediately."""
        with self._lock:
            self._request = request
        return self._render(request)

    def export(self, pixel_ratio: float = 2.0) -> Optional[str]:
        if self._request is None or self.loader.disposed:
            return None
        try:
            return self.renderer.export(self._request, pixel_ratio)
        except RenderError as e:
            logger.error(f"Failed to export preview: {e}")
            return None

    def dispose(self) -> None:
        self.loader.dispose()
        with self._lock:
            self._request = None

    def _image_ready(self, src: str) -> None:
        with self._lock:
            request = self._request
        if request is None or src not in request.image_sources():
            logger.debug(f"Discarding stale image load: {src[:80]}")
            return
        self._render(request)

    def _render(self, request: RenderRequest) -> Image.Image:
        frame = self.renderer.render(request)
        with self._lock:
            # A newer snapshot may have been swapped in while rendering
            if request is not self._request:
                return frame
            self._frame = frame
        if self.on_frame is not None:
            self.on_frame(frame)
        return frame

