import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from unittest import mock

import pytest
from PIL import Image

from memory_composer.compositor import Compositor, render
from memory_composer.errors import (
    EncodeFailure,
    InvalidParameter,
    NoUsableImages,
    RenderCancelled,
    SurfaceAllocationFailure,
)
from memory_composer.layouts import compute_layout
from memory_composer.loader import ResourceLoader
from memory_composer.models import CompositionSpec, ImageReference, LayoutKind, LayoutParams
from memory_composer.themes import Theme
from memory_composer.utils.effects import EffectParameters

RED, GREEN, BLUE = (255, 0, 0), (0, 255, 0), (0, 0, 255)


@pytest.fixture
def refs(image_bytes):
    return [ImageReference(image_bytes(color)) for color in (RED, GREEN, BLUE)]


def _pixel_at_centre(image, placement):
    x, y = placement.center
    return image.getpixel((int(x), int(y)))


def test_grid_collage_end_to_end(refs, caplog):
    with caplog.at_level(logging.INFO):
        result = Compositor().render(refs, CompositionSpec())

    assert (result.format, result.mime_type) == ("PNG", "image/png")
    assert (result.width, result.height) == (800, 600)
    assert result.placements == compute_layout(3, LayoutKind.GRID, 800, 600)
    assert result.report.succeeded_count == 3

    image = result.to_image()
    assert image.size == (800, 600)
    assert image.getpixel((2, 2)) == (255, 255, 255)
    colours = [_pixel_at_centre(image, p) for p in result.placements]
    assert colours == [RED, GREEN, BLUE]
    assert "Rendered collage grid composition 800x600 with 3 of 3 images" in caplog.text


def test_partial_failures_are_reported(refs):
    batch = [refs[0], ImageReference(b"broken"), refs[2]]
    result = Compositor().render(batch, CompositionSpec(layout="diagonal"))
    assert len(result.placements) == 2
    assert result.report.failed_count == 1
    assert result.report.failed[0].index == 1


def test_no_usable_images_aborts_before_drawing():
    with mock.patch("memory_composer.compositor.allocated_surface") as allocate:
        with pytest.raises(NoUsableImages, match="cannot compose: no images available"):
            Compositor().render([ImageReference(b"x"), ImageReference(b"y")], CompositionSpec())
    allocate.assert_not_called()


@pytest.mark.parametrize(
    "spec, error",
    [
        (CompositionSpec(width=0), InvalidParameter),
        (CompositionSpec(theme="neon"), InvalidParameter),
        (CompositionSpec(layout="spiral"), InvalidParameter),
        (CompositionSpec(width=9000), SurfaceAllocationFailure),
        (CompositionSpec(format="GIF"), EncodeFailure),
    ],
)
def test_bad_specs_fail_before_loading(refs, spec, error):
    loader = mock.Mock(spec=ResourceLoader)
    with pytest.raises(error):
        Compositor(loader=loader).render(refs, spec)
    loader.load_or_raise.assert_not_called()


def test_titled_collage_reserves_header(refs):
    result = Compositor().render(refs[:1], CompositionSpec.collage("Summer", frame=True))
    (placement,) = result.placements
    assert (placement.x, placement.y) == (10, 70)
    image = result.to_image()
    assert image.getpixel((10, 300)) == (51, 51, 51)


def test_custom_theme_background(refs):
    theme = Theme("night", background="#101010")
    result = Compositor().render(refs[:1], CompositionSpec(theme=theme))
    assert result.to_image().getpixel((2, 2)) == (16, 16, 16)


def test_book_cover_uses_four_images(image_bytes):
    refs = [ImageReference(image_bytes(RED)) for _ in range(6)]
    result = Compositor().render(refs, CompositionSpec.book("Our Trip"))
    assert result.report.attempted == 4
    assert len(result.placements) == 4

    image = result.to_image()
    assert image.getpixel((10, 10)) == (255, 255, 255)
    assert image.getpixel((60, 60)) == (240, 240, 240)
    assert image.getpixel((400, 160)) == (208, 208, 208)
    assert _pixel_at_centre(image, result.placements[3]) == RED


def test_mashup_card_draws_player(image_bytes):
    refs = [ImageReference(image_bytes(GREEN)) for _ in range(2)]
    result = Compositor().render(refs, CompositionSpec.mashup("Road trip", duration=30))
    assert (result.width, result.height) == (800, 450)

    image = result.to_image()
    first = result.placements[0]
    assert (first.x, first.y) == (100, 120)
    assert image.getpixel((99, 150)) == (0, 0, 0)
    assert image.getpixel((150, 355)) == (221, 221, 221)
    assert image.getpixel((405, 352)) == (255, 0, 0)
    assert image.getpixel((375, 300)) == (51, 51, 51)


def test_video_placeholder_gets_play_icon(image_bytes):
    ref = ImageReference(image_bytes((255, 255, 255)), media_type="video")
    result = Compositor().render([ref], CompositionSpec())
    (placement,) = result.placements
    image = result.to_image()
    icon = image.getpixel((int(placement.x) + 12, int(placement.y) + 17))
    assert all(channel < 200 for channel in icon)


def test_identity_effects_leave_output_unchanged(refs):
    plain = Compositor().render(refs, CompositionSpec())
    filtered = Compositor().render(refs, CompositionSpec(effects=EffectParameters()))
    assert plain.to_image().tobytes() == filtered.to_image().tobytes()


def test_effects_apply_to_whole_surface(refs):
    result = Compositor().render(refs[:1], CompositionSpec(effects=EffectParameters(grayscale=100)))
    image = result.to_image()
    r, g, b = _pixel_at_centre(image, result.placements[0])
    assert abs(r - g) <= 1 and abs(g - b) <= 1


def test_jpeg_output(refs):
    result = render(refs, CompositionSpec(format="jpeg", quality=80))
    assert result.mime_type == "image/jpeg"
    assert result.data_url().startswith("data:image/jpeg;base64,")
    assert result.to_image().mode == "RGB"


def test_edit_photo_keeps_size(image_bytes):
    ref = ImageReference(image_bytes((200, 100, 50), size=(64, 48)))
    result = Compositor().edit_photo(ref, EffectParameters(brightness=50), fmt="PNG")
    assert (result.width, result.height) == (64, 48)
    image = result.to_image()
    assert image.size == (64, 48)
    assert image.getpixel((32, 24)) == (100, 50, 25)


def test_edit_photo_defaults_to_jpeg(image_bytes):
    result = Compositor().edit_photo(ImageReference(image_bytes()), EffectParameters(sepia=50))
    assert result.format == "JPEG"


def test_edit_photo_keeps_transparency_for_png(image_bytes):
    ref = ImageReference(image_bytes((200, 100, 50, 128), size=(8, 8), mode="RGBA"))
    result = Compositor().edit_photo(ref, EffectParameters(sepia=10), fmt="PNG")
    image = result.to_image()
    assert image.mode == "RGBA"
    assert image.getpixel((4, 4))[3] == 128


def test_edit_photo_identity_returns_the_rgba_pixels(image_bytes):
    ref = ImageReference(image_bytes((200, 100, 50, 128), size=(8, 8), mode="RGBA"))
    result = Compositor().edit_photo(ref, EffectParameters(), fmt="WEBP")
    assert result.format == "WEBP"
    image = Compositor().edit_photo(ref, EffectParameters(), fmt="PNG").to_image()
    assert image.getpixel((0, 0)) == (200, 100, 50, 128)


def test_edit_photo_flattens_transparency_for_jpeg(image_bytes):
    ref = ImageReference(image_bytes((200, 100, 50, 128), size=(8, 8), mode="RGBA"))
    assert Compositor().edit_photo(ref, EffectParameters(sepia=10)).to_image().mode == "RGB"


def test_compose_without_images_raises_before_allocating():
    with mock.patch("memory_composer.compositor.new_surface") as allocate:
        with pytest.raises(NoUsableImages) as excinfo:
            Compositor().compose([], CompositionSpec())
    assert excinfo.value.attempted == 0
    allocate.assert_not_called()


def test_compose_returns_caller_owned_surface():
    images = [Image.new("RGB", (10, 10), RED)]
    surface, placements = Compositor().compose(images, CompositionSpec(width=100, height=100))
    assert surface.size == (100, 100)
    assert _pixel_at_centre(surface, placements[0]) == RED
    surface.close()


def test_cancel_before_render(refs):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(RenderCancelled):
        Compositor().render(refs, CompositionSpec(), cancel)


def test_cancel_after_loading_skips_drawing(refs):
    cancel = threading.Event()
    loader = ResourceLoader()
    real_load = loader.load_or_raise

    def load_then_cancel(references, cancel_event=None):
        report = real_load(references, cancel_event)
        cancel.set()
        return report

    with mock.patch.object(loader, "load_or_raise", side_effect=load_then_cancel):
        with mock.patch("memory_composer.compositor.allocated_surface") as allocate:
            with pytest.raises(RenderCancelled):
                Compositor(loader=loader).render(refs, CompositionSpec(), cancel)
    allocate.assert_not_called()


def test_concurrent_renders_do_not_interfere(refs):
    compositor = Compositor()
    specs = [CompositionSpec(layout="mosaic", layout_params=LayoutParams(seed=seed)) for seed in (1, 1, 2)]
    with ThreadPoolExecutor(max_workers=3) as pool:
        results = list(pool.map(lambda spec: compositor.render(refs, spec), specs))
    assert results[0].data == results[1].data
    assert results[0].placements != results[2].placements
