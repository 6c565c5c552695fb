"""
Tests for the canvas composition renderer and the live preview surface.
"""

import base64
import io
import threading
import time

import pytest
from PIL import Image, ImageChops, ImageDraw, ImageFont

from apparel_studio.errors import ImageSourceError, RenderError
from apparel_studio.geometry import PixelRect
from apparel_studio.image_loader import ImageLoader
from apparel_studio.models import ResolvedPlacement
from apparel_studio.render import (
    ELLIPSIS, GUIDE_RADIUS, LivePreview, RenderRequest, compute_font_size, draw_dashed_rectangle, parse_color,
    rounded_outline, truncate_lines, wrap_text
)


WIDTH, HEIGHT = 300, 400
# Center of the front/upper/standard rectangle on a 300x400 canvas
FRONT_CENTER = (150, 148)


def text_placement(text='HELLO', **kwargs):
    fields = dict(id='p-text', area='front', vertical_position='upper', design_type='text',
                  design_text=text, design_font='Arial', design_color='#000000')
    fields.update(kwargs)
    return ResolvedPlacement(**fields)


def image_placement(url='designs/logo.png', **kwargs):
    fields = dict(id='p-image', area='front', vertical_position='upper', design_type='image',
                  design_image_url=url)
    fields.update(kwargs)
    return ResolvedPlacement(**fields)


def make_request(placements=(), base='base-shirts/white-front.png', **kwargs):
    return RenderRequest(base_image=base, placements=tuple(placements), width=WIDTH, height=HEIGHT, **kwargs)


def render_loaded(renderer, request):
    """Render after every image the request references has loaded or failed."""
    renderer.loader.wait(request.image_sources())
    return renderer.render(request)


def identical(a: Image.Image, b: Image.Image) -> bool:
    return a.size == b.size and ImageChops.difference(a, b).getbbox() is None


def wait_until(predicate, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


class TestFontSize:
    """Test the font size derivation from the placement rectangle."""

    def test_default_full_mode(self):
        assert compute_font_size(PixelRect(0, 0, 100, 200), 'full') == pytest.approx(42)

    def test_thumbnail_mode_scales_down(self):
        assert compute_font_size(PixelRect(0, 0, 100, 200), 'thumbnail') == pytest.approx(30)

    def test_size_control_scales_relative_to_40(self):
        assert compute_font_size(PixelRect(0, 0, 100, 200), 'thumbnail', 80) == pytest.approx(60)

    def test_small_control_normalized_to_12(self):
        assert compute_font_size(PixelRect(0, 0, 100, 200), 'full', 5) == pytest.approx(12.6)

    def test_never_below_12(self):
        assert compute_font_size(PixelRect(0, 0, 10, 10), 'full') == 12


class TestTextLayout:
    """Test word wrap and ellipsis truncation."""

    @pytest.fixture
    def draw(self):
        return ImageDraw.Draw(Image.new('RGBA', (10, 10)))

    @pytest.fixture
    def font(self):
        return ImageFont.load_default()

    def test_wraps_to_width(self, draw, font):
        lines = wrap_text(draw, 'the quick brown fox jumps over the lazy dog', font, 60)

        assert len(lines) > 1
        assert all(draw.textlength(line, font=font) <= 60 for line in lines)
        assert ' '.join(lines) == 'the quick brown fox jumps over the lazy dog'

    def test_breaks_long_word(self, draw, font):
        lines = wrap_text(draw, 'W' * 40, font, 50)

        assert len(lines) > 1
        assert ''.join(lines) == 'W' * 40

    def test_keeps_explicit_newlines(self, draw, font):
        assert wrap_text(draw, 'one\ntwo', font, 500) == ['one', 'two']

    def test_truncates_with_ellipsis(self, draw, font):
        lines = truncate_lines(draw, ['first line', 'second line', 'third line'], font, 200, 2)

        assert len(lines) == 2
        assert lines[0] == 'first line'
        assert lines[1].endswith(ELLIPSIS)

    def test_no_truncation_when_it_fits(self, draw, font):
        assert truncate_lines(draw, ['a', 'b'], font, 200, 3) == ['a', 'b']


class TestParseColor:
    """Test CSS color parsing for text fills."""

    def test_hex(self):
        assert parse_color('#ff0000') == (255, 0, 0, 255)

    def test_named(self):
        assert parse_color('white') == (255, 255, 255, 255)

    def test_invalid_falls_back(self):
        assert parse_color('not-a-color') == (0, 0, 0, 255)


class TestDashedGuides:
    """Test the dashed guide outline."""

    def outline(self, radius, dash=(4, 0)):
        image = Image.new('L', (100, 100), 0)
        draw_dashed_rectangle(ImageDraw.Draw(image), (10, 10, 90, 90), 255, 1, dash, radius=radius)
        return image

    def test_square_corners(self):
        image = self.outline(0)

        assert image.getpixel((10, 10)) == 255
        assert image.getpixel((50, 10)) == 255

    def test_rounded_corners_leave_corner_empty(self):
        image = self.outline(GUIDE_RADIUS * 2)

        assert image.getpixel((10, 10)) == 0
        assert image.getpixel((50, 10)) == 255
        assert image.getpixel((10, 50)) == 255
        assert image.getpixel((90, 50)) == 255

    def test_dashes_leave_gaps(self):
        row = [self.outline(0, dash=(6, 4)).getpixel((x, 10)) for x in range(12, 89)]

        assert 0 in row and 255 in row

    def test_radius_limited_to_half_the_box(self):
        points = rounded_outline((0, 0, 20, 10), radius=50)

        assert min(y for _, y in points) == pytest.approx(0)
        assert max(y for _, y in points) == pytest.approx(10)
        assert max(x for x, _ in points) == pytest.approx(20)

    def test_guide_corners_are_rounded_on_canvas(self, renderer):
        image = render_loaded(renderer, make_request([text_placement('')], show_guides=True))
        left, top, right, bottom = renderer.resolver.resolve('front', 'upper', None, WIDTH, HEIGHT).as_box()

        assert image.getpixel((left, top)) == (255, 255, 255, 255)
        assert image.getpixel((right, bottom)) == (255, 255, 255, 255)


class TestCanvasRenderer:
    """Test raster composition."""

    def test_output_size(self, renderer):
        image = render_loaded(renderer, make_request())
        assert image.size == (WIDTH, HEIGHT)

    def test_background_fill_per_mode(self, renderer):
        full = renderer.render(make_request(base=None))
        thumb = renderer.render(make_request(base=None, mode='thumbnail'))

        assert full.getpixel((150, 200)) == (255, 255, 255, 255)
        assert thumb.getpixel((150, 200)) == (241, 245, 249, 255)

    def test_base_garment_drawn(self, renderer):
        image = render_loaded(renderer, make_request(base='base-shirts/black-front.png'))
        assert image.getpixel((150, 200)) == (20, 20, 20, 255)

    def test_image_placement_fills_rect(self, renderer):
        image = render_loaded(renderer, make_request([image_placement()]))

        assert image.getpixel(FRONT_CENTER) == (255, 0, 0, 255)
        # Outside the rectangle the garment shows through
        assert image.getpixel((20, 380)) == (255, 255, 255, 255)

    def test_text_placement_draws_ink(self, renderer):
        image = render_loaded(renderer, make_request([text_placement('HELLO WORLD')]))
        rect = renderer.resolver.resolve('front', 'upper', None, WIDTH, HEIGHT)
        region = image.crop(rect.as_box()).convert('L')

        assert region.getextrema()[0] < 128

    def test_empty_text_draws_nothing(self, renderer):
        bare = render_loaded(renderer, make_request())
        empty = render_loaded(renderer, make_request([text_placement('')]))

        assert identical(bare, empty)

    def test_failed_image_renders_without_it(self, renderer):
        """A missing design image never fails the render."""
        bare = render_loaded(renderer, make_request())
        missing = render_loaded(renderer, make_request([image_placement('designs/missing.png')]))

        assert renderer.loader.is_failed('designs/missing.png')
        assert identical(bare, missing)

    def test_missing_base_image_renders_background(self, renderer):
        image = render_loaded(renderer, make_request(base='base-shirts/purple-front.png'))
        assert image.getpixel((150, 200)) == (255, 255, 255, 255)

    def test_unknown_area_skipped(self, renderer):
        placement = text_placement(area='sleeve')
        request = make_request([placement])

        assert renderer.renderable_placements(request) == []
        assert identical(render_loaded(renderer, request), render_loaded(renderer, make_request()))

    def test_render_is_deterministic(self, renderer):
        request = make_request([text_placement('SAME'), image_placement(area='back')], show_guides=True)
        first = render_loaded(renderer, request)
        second = renderer.render(request)

        assert first.tobytes() == second.tobytes()

    def test_guides_outline_placements(self, renderer):
        plain = render_loaded(renderer, make_request([text_placement('')]))
        guided = render_loaded(renderer, make_request([text_placement('')], show_guides=True))

        assert not identical(plain, guided)

    def interior(self, renderer, image, inset=4):
        left, top, right, bottom = renderer.resolver.resolve('front', 'upper', None, WIDTH, HEIGHT).as_box()
        return image.crop((left + inset, top + inset, right - inset, bottom - inset))

    def test_empty_slot_shows_placement_label(self, renderer):
        plain = render_loaded(renderer, make_request([text_placement('')]))
        guided = render_loaded(renderer, make_request([text_placement('')], show_guides=True))

        assert [color for _, color in self.interior(renderer, plain).getcolors()] == [(255, 255, 255, 255)]
        # Label ink inside the rectangle, away from the dashed outline
        assert self.interior(renderer, guided).convert('L').getextrema()[0] < 200

    def test_filled_slot_has_no_placement_label(self, renderer):
        filled = render_loaded(renderer, make_request([image_placement()], show_guides=True))
        colors = self.interior(renderer, filled).getcolors()

        assert [color for _, color in colors] == [(255, 0, 0, 255)]

    def test_label_only_for_empty_slots_side_by_side(self, renderer):
        empty = text_placement('', id='empty', area='left_chest')
        filled = image_placement(id='filled', area='right_chest')
        image = render_loaded(renderer, make_request([empty, filled], show_guides=True))

        def inner(area):
            left, top, right, bottom = renderer.resolver.resolve(area, None, None, WIDTH, HEIGHT).as_box()
            return image.crop((left + 4, top + 4, right - 4, bottom - 4))

        assert inner('left_chest').convert('L').getextrema()[0] < 200
        assert [color for _, color in inner('right_chest').getcolors()] == [(255, 0, 0, 255)]

    def test_active_guide_differs(self, renderer):
        inactive = render_loaded(renderer, make_request([text_placement('')], show_guides=True))
        active = render_loaded(renderer, make_request([text_placement('')], show_guides=True,
                                                      active_placement_id='p-text'))

        assert not identical(inactive, active)

    def test_dark_garment_uses_light_guides(self, renderer):
        request = make_request([text_placement('')], base='base-shirts/black-front.png', show_guides=True)
        image = render_loaded(renderer, request)
        rect = renderer.resolver.resolve('front', 'upper', None, WIDTH, HEIGHT)
        edge = image.crop((round(rect.x) - 1, round(rect.y) - 1, round(rect.right) + 2, round(rect.y) + 2))

        assert request.is_dark_base
        assert edge.convert('L').getextrema()[1] > 150

    def test_scale_multiplies_resolution(self, renderer):
        request = make_request([image_placement()])
        renderer.loader.wait(request.image_sources())
        image = renderer.render(request, scale=2)

        assert image.size == (WIDTH * 2, HEIGHT * 2)
        assert image.getpixel((FRONT_CENTER[0] * 2, FRONT_CENTER[1] * 2)) == (255, 0, 0, 255)

    def test_invalid_size_raises(self, renderer):
        with pytest.raises(RenderError):
            renderer.render(RenderRequest(base_image=None, placements=(), width=0, height=100))

    def test_unknown_mode_raises(self, renderer):
        with pytest.raises(RenderError):
            renderer.render(make_request(base=None, mode='poster'))

    def test_export_data_url(self, renderer):
        request = make_request([text_placement()])
        renderer.loader.wait(request.image_sources())
        data_url = renderer.export(request, pixel_ratio=2.0)

        assert data_url.startswith('data:image/png;base64,')
        image = Image.open(io.BytesIO(base64.b64decode(data_url.split(',', 1)[1])))
        assert image.size == (WIDTH * 2, HEIGHT * 2)

    def test_export_jpeg_is_flattened(self, renderer):
        data = renderer.export_bytes(make_request(base=None), pixel_ratio=1.0, image_format='JPEG')
        image = Image.open(io.BytesIO(data))

        assert image.format == 'JPEG'
        assert image.mode == 'RGB'


class TestLivePreview:
    """Test the interactive preview surface."""

    @pytest.fixture
    def live(self, resolver, design_config, assets_dir):
        frames = []
        preview = LivePreview(
            resolver,
            design_config.fonts,
            lambda on_ready: ImageLoader(assets_dir, max_workers=2, timeout=5.0, on_ready=on_ready),
            on_frame=frames.append,
        )
        preview.frames = frames
        yield preview
        preview.dispose()

    def test_update_renders_immediately(self, live):
        frame = live.update(make_request(base=None))

        assert frame is live.current_frame
        assert live.frames == [frame]

    def test_rerenders_when_image_arrives(self, live):
        live.update(make_request([image_placement()], base=None))

        assert wait_until(lambda: live.current_frame.getpixel(FRONT_CENTER) == (255, 0, 0, 255))

    def test_stale_load_is_discarded(self, live):
        """A load for a source the latest snapshot no longer uses never replaces the frame."""
        live.update(make_request([image_placement()], base=None))
        latest = make_request([text_placement('NEW')], base=None)
        live.update(latest)

        live.loader.wait(['designs/logo.png'])
        time.sleep(0.1)

        assert live.request is latest
        assert live.current_frame.getpixel(FRONT_CENTER) != (255, 0, 0, 255)

    def test_export_uses_latest_snapshot(self, live):
        live.update(make_request(base=None))
        assert live.export(pixel_ratio=1.0).startswith('data:image/png;base64,')

    def test_dispose_stops_exports(self, live):
        live.update(make_request(base=None))
        live.dispose()

        assert live.export() is None
        assert live.request is None


class TestImageLoader:
    """Test the asynchronous image cache."""

    def test_first_request_is_pending(self, loader):
        assert loader.request('designs/logo.png') is None
        loader.wait(['designs/logo.png'])
        assert loader.request('designs/logo.png') is not None

    def test_local_path_with_leading_slash(self, loader):
        loader.wait(['/designs/logo.png'])
        assert loader.get('/designs/logo.png').size == (64, 64)

    def test_data_url(self, loader):
        buffer = io.BytesIO()
        Image.new('RGB', (4, 4), (0, 255, 0)).save(buffer, 'PNG')
        src = 'data:image/png;base64,' + base64.b64encode(buffer.getvalue()).decode('ascii')

        loader.wait([src])
        image = loader.get(src)

        assert image.mode == 'RGBA'
        assert image.getpixel((0, 0)) == (0, 255, 0, 255)

    def test_failure_is_remembered(self, loader):
        loader.wait(['designs/nope.png'])

        assert loader.is_failed('designs/nope.png')
        assert loader.request('designs/nope.png') is None
        assert not loader.is_pending('designs/nope.png')

    def test_remote_image_via_httpx(self, loader, monkeypatch):
        buffer = io.BytesIO()
        Image.new('RGB', (8, 8), (0, 0, 255)).save(buffer, 'PNG')

        class FakeResponse:
            content = buffer.getvalue()

            def raise_for_status(self):
                return None

        calls = []

        def fake_get(url, timeout, follow_redirects):
            calls.append(url)
            return FakeResponse()

        monkeypatch.setattr('apparel_studio.image_loader.httpx.get', fake_get)
        loader.wait(['https://cdn.example.com/a.png'])

        assert calls == ['https://cdn.example.com/a.png']
        assert loader.get('https://cdn.example.com/a.png').size == (8, 8)

    def test_disposed_loader_discards_late_results(self, assets_dir, monkeypatch):
        release = threading.Event()
        ready = []

        class FakeResponse:
            content = b''

            def raise_for_status(self):
                return None

        def slow_get(url, timeout, follow_redirects):
            release.wait(5)
            buffer = io.BytesIO()
            Image.new('RGB', (2, 2)).save(buffer, 'PNG')
            response = FakeResponse()
            response.content = buffer.getvalue()
            return response

        monkeypatch.setattr('apparel_studio.image_loader.httpx.get', slow_get)
        loader = ImageLoader(assets_dir, max_workers=1, timeout=5.0, on_ready=ready.append)

        assert loader.request('https://cdn.example.com/slow.png') is None
        loader.dispose()
        release.set()
        time.sleep(0.2)

        assert loader.get('https://cdn.example.com/slow.png') is None
        assert ready == []
        assert loader.request('https://cdn.example.com/other.png') is None


def data_url(color) -> str:
    buffer = io.BytesIO()
    Image.new('RGB', (2, 2), color).save(buffer, 'PNG')
    return 'data:image/png;base64,' + base64.b64encode(buffer.getvalue()).decode('ascii')


class TestImageSources:
    """Test which sources the loader agrees to read."""

    @pytest.fixture
    def layout(self, tmp_path):
        assets = tmp_path / 'assets'
        (assets / 'designs').mkdir(parents=True)
        Image.new('RGB', (8, 8), (0, 0, 255)).save(assets / 'designs' / 'inside.png')
        Image.new('RGB', (8, 8), (255, 0, 0)).save(tmp_path / 'secret.png')
        return assets

    def test_path_outside_assets_is_refused(self, layout):
        loader = ImageLoader(layout, max_workers=1, timeout=5.0)
        try:
            loader.wait(['../secret.png', 'designs/../../secret.png'])

            assert loader.get('../secret.png') is None
            assert loader.get('designs/../../secret.png') is None
            assert loader.is_failed('../secret.png')
        finally:
            loader.dispose()

    def test_resolve_local_path(self, layout):
        loader = ImageLoader(layout, max_workers=1)
        try:
            assert loader.resolve_local_path('/designs/inside.png') == (layout / 'designs' / 'inside.png').resolve()
            assert loader.resolve_local_path('designs/../designs/inside.png').name == 'inside.png'
            with pytest.raises(ImageSourceError):
                loader.resolve_local_path('../secret.png')
        finally:
            loader.dispose()

    def test_disallowed_host_is_never_fetched(self, assets_dir, monkeypatch):
        calls = []

        def fake_get(url, timeout, follow_redirects):
            calls.append(url)
            raise AssertionError('unexpected fetch')

        monkeypatch.setattr('apparel_studio.image_loader.httpx.get', fake_get)
        loader = ImageLoader(assets_dir, max_workers=1, timeout=5.0, allowed_hosts=['res.cloudinary.com'])
        try:
            loader.wait(['http://169.254.169.254/latest/meta-data.png'])

            assert calls == []
            assert loader.is_failed('http://169.254.169.254/latest/meta-data.png')
        finally:
            loader.dispose()

    def test_allowed_host_is_fetched_without_redirects(self, assets_dir, monkeypatch):
        buffer = io.BytesIO()
        Image.new('RGB', (8, 8), (0, 0, 255)).save(buffer, 'PNG')
        calls = []

        class FakeResponse:
            content = buffer.getvalue()

            def raise_for_status(self):
                return None

        def fake_get(url, timeout, follow_redirects):
            calls.append((url, follow_redirects))
            return FakeResponse()

        monkeypatch.setattr('apparel_studio.image_loader.httpx.get', fake_get)
        loader = ImageLoader(assets_dir, max_workers=1, timeout=5.0, allowed_hosts=['RES.cloudinary.com'])
        src = 'https://res.cloudinary.com/demo-cloud/image/upload/logo.png'
        try:
            loader.wait([src])

            assert calls == [(src, False)]
            assert loader.get(src).size == (8, 8)
        finally:
            loader.dispose()


class TestImageCache:
    """Test that loaded images and failures are kept in bounded caches."""

    def test_least_recently_used_image_is_evicted(self, assets_dir):
        first, second, third = data_url((255, 0, 0)), data_url((0, 255, 0)), data_url((0, 0, 255))
        loader = ImageLoader(assets_dir, max_workers=1, timeout=5.0, max_cached=2)
        try:
            loader.wait([first])
            loader.wait([second])
            assert loader.get(first) is not None
            loader.wait([third])

            assert loader.cached_count() == 2
            assert loader.get(second) is None
            assert loader.get(first) is not None
            assert loader.get(third) is not None
        finally:
            loader.dispose()

    def test_evicted_image_loads_again(self, assets_dir):
        first, second = data_url((255, 0, 0)), data_url((0, 255, 0))
        loader = ImageLoader(assets_dir, max_workers=1, timeout=5.0, max_cached=1)
        try:
            loader.wait([first])
            loader.wait([second])
            assert loader.request(first) is None

            loader.wait([first])
            assert loader.get(first).getpixel((0, 0)) == (255, 0, 0, 255)
        finally:
            loader.dispose()

    def test_failures_are_bounded(self, assets_dir):
        loader = ImageLoader(assets_dir, max_workers=1, timeout=5.0, max_cached=1)
        try:
            loader.wait(['designs/missing-1.png'])
            loader.wait(['designs/missing-2.png'])

            assert not loader.is_failed('designs/missing-1.png')
            assert loader.is_failed('designs/missing-2.png')
        finally:
            loader.dispose()
