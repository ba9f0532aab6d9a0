"""
Compositor: turns references and a CompositionSpec into an encoded image.

Pipeline per render: validate -> load (fan-out/fan-in) -> layout -> draw
background and template decorations -> draw tiles -> optional whole-surface
effects -> encode.  Each render owns its executor and surface; nothing is
shared between concurrent renders.
"""
import logging
from dataclasses import replace
from threading import Event
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from PIL import Image, ImageDraw, ImageFont

from . import config
from .errors import CompositionError, InvalidParameter, NoUsableImages, RenderCancelled
from .exporter import encode, mime_type, normalize_format
from .layouts import compute_layout
from .loader import ResourceLoader
from .models import (
    CompositionResult,
    CompositionSpec,
    DecodedImage,
    ImageReference,
    LayoutKind,
    LayoutParams,
    LoadReport,
    Placement,
    Template,
)
from .surface import allocated_surface, check_surface_budget, new_surface
from .themes import Theme, ThemeRegistry
from .utils.effects import EffectParameters, apply_effects
from .utils.image_operations import fit_image

LOGGER = logging.getLogger(__name__)

Font = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]

_REGULAR_FONTS = ("DejaVuSans.ttf", "Arial.ttf", "arial.ttf")
_BOLD_FONTS = ("DejaVuSans-Bold.ttf", "Arial Bold.ttf", "arialbd.ttf")


def load_font(size: int, bold: bool = False) -> Font:
    """Return a TrueType font when one is installed, else Pillow's default font."""
    for name in _BOLD_FONTS if bold else _REGULAR_FONTS:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


def draw_text(draw: ImageDraw.ImageDraw, text: str, x: float, baseline: float,
              font: Font, fill, align: str = "center") -> None:
    """Draw ``text`` with its bottom on ``baseline``, aligned around ``x``."""
    if not text:
        return
    left, _, right, bottom = draw.textbbox((0, 0), text, font=font)
    width = right - left
    if align == "center":
        x0 = x - width / 2 - left
    elif align == "right":
        x0 = x - width - left
    else:
        x0 = x - left
    draw.text((x0, baseline - bottom), text, font=font, fill=fill)


def _raise_if_cancelled(cancel_event: Optional[Event], stage: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise RenderCancelled(f"render cancelled {stage}")


class Compositor:
    """Orchestrates loader, layout engine, drawing, effects and encoding."""

    def __init__(self, loader: Optional[ResourceLoader] = None, themes: Optional[ThemeRegistry] = None):
        self.loader = loader or ResourceLoader()
        self.themes = themes or ThemeRegistry()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def render(
        self,
        references: Iterable[ImageReference],
        spec: CompositionSpec,
        cancel_event: Optional[Event] = None,
    ) -> CompositionResult:
        """Load ``references`` and compose them according to ``spec``.

        Raises:
            InvalidParameter: If ``spec`` is invalid (before any loading)
            NoUsableImages: If no reference decodes (before any drawing)
            SurfaceAllocationFailure: If the surface cannot be allocated
            EncodeFailure: If the result cannot be encoded
            RenderCancelled: If ``cancel_event`` gets set
        """
        spec = spec.validated()
        theme = self.themes.get_theme(spec.theme)
        refs = self._limit_references(list(references), spec.template)
        # Reject bad layout parameters and oversized surfaces before any I/O
        self._layout(len(refs), spec)
        check_surface_budget(spec.width, spec.height)
        normalize_format(spec.format)

        try:
            report = self.loader.load_or_raise(refs, cancel_event)
            return self._render_loaded(report, spec, theme, cancel_event)
        except CompositionError as e:
            LOGGER.error("Render of %d images aborted: %s", len(refs), e)
            raise

    def compose(
        self,
        images: Sequence[Union[DecodedImage, Image.Image]],
        spec: CompositionSpec,
    ) -> Tuple[Image.Image, List[Placement]]:
        """Compose already decoded images; the returned surface belongs to the caller."""
        spec = spec.validated()
        theme = self.themes.get_theme(spec.theme)
        decoded = [
            item if isinstance(item, DecodedImage) else DecodedImage(ImageReference(b"", label=f"image-{i}"), item, i)
            for i, item in enumerate(images)
        ]
        if not decoded:
            raise NoUsableImages(0)
        decoded = decoded[: self._template_limit(spec.template) or len(decoded)]
        placements = self._layout(len(decoded), spec)
        mode = self._surface_mode(spec, decoded)
        surface = new_surface(spec.width, spec.height, self._base_color(spec, theme, mode), mode)
        self._draw(surface, decoded, placements, spec, theme, None)
        if spec.effects is not None:
            filtered = apply_effects(surface, spec.effects)
            surface.close()
            surface = filtered
        return surface, placements

    def edit_photo(
        self,
        reference: ImageReference,
        effects: EffectParameters,
        fmt: str = "JPEG",
        quality: int = 90,
        cancel_event: Optional[Event] = None,
    ) -> CompositionResult:
        """Apply ``effects`` to a single photo at its native size."""
        if not isinstance(effects, EffectParameters):
            raise InvalidParameter("effects", effects, "expected EffectParameters")
        normalize_format(fmt)
        try:
            report = self.loader.load_or_raise([reference], cancel_event)
            image = report.succeeded[0].image
            spec = CompositionSpec(
                template=Template.PHOTO,
                layout=LayoutKind.GRID,
                layout_params=LayoutParams(padding=0),
                effects=effects,
                width=image.width,
                height=image.height,
                format=fmt,
                quality=quality,
            ).validated()
            check_surface_budget(spec.width, spec.height)
            return self._render_loaded(report, spec, self.themes.get_theme("classic"), cancel_event)
        except CompositionError as e:
            LOGGER.error("Editing %s aborted: %s", reference, e)
            raise

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------
    def _render_loaded(
        self,
        report: LoadReport,
        spec: CompositionSpec,
        theme: Theme,
        cancel_event: Optional[Event],
    ) -> CompositionResult:
        _raise_if_cancelled(cancel_event, "after loading")
        placements = self._layout(report.succeeded_count, spec)
        fmt = normalize_format(spec.format)

        mode = self._surface_mode(spec, report.succeeded)
        with allocated_surface(spec.width, spec.height, self._base_color(spec, theme, mode), mode) as surface:
            self._draw(surface, report.succeeded, placements, spec, theme, cancel_event)
            output = surface
            try:
                if spec.effects is not None:
                    _raise_if_cancelled(cancel_event, "before effects")
                    output = apply_effects(surface, spec.effects)
                _raise_if_cancelled(cancel_event, "before encoding")
                data = encode(output, fmt, spec.quality)
            finally:
                if output is not surface:
                    output.close()

        LOGGER.info(
            "Rendered %s %s composition %dx%d with %d of %d images",
            spec.template.value, spec.layout.value, spec.width, spec.height,
            report.succeeded_count, report.attempted,
        )
        return CompositionResult(
            data=data,
            format=fmt,
            mime_type=mime_type(fmt),
            width=spec.width,
            height=spec.height,
            placements=placements,
            report=report,
        )

    def _layout(self, count: int, spec: CompositionSpec) -> List[Placement]:
        left, top, width, height = self._content_area(spec)
        placements = compute_layout(count, spec.layout, width, height, spec.layout_params)
        if left or top:
            placements = [replace(p, x=p.x + left, y=p.y + top) for p in placements]
        return placements

    @staticmethod
    def _content_area(spec: CompositionSpec) -> Tuple[int, int, int, int]:
        """Region the layout engine fills; a titled collage reserves a header."""
        header = config.COLLAGE_HEADER_HEIGHT
        if spec.template is Template.COLLAGE and spec.title and spec.height > header:
            return 0, header, spec.width, spec.height - header
        return 0, 0, spec.width, spec.height

    @staticmethod
    def _template_limit(template: Template) -> Optional[int]:
        return config.TEMPLATE_IMAGE_LIMITS.get(template.value)

    def _limit_references(self, refs: List[ImageReference], template: Template) -> List[ImageReference]:
        limit = self._template_limit(template)
        if limit is not None and len(refs) > limit:
            LOGGER.info("%s template uses the first %d of %d images", template.value, limit, len(refs))
            return refs[:limit]
        return refs

    @staticmethod
    def _surface_mode(spec: CompositionSpec, images: Sequence[DecodedImage]) -> str:
        """A photo keeps its transparency unless it is bound for JPEG."""
        if spec.template is not Template.PHOTO or normalize_format(spec.format) == "JPEG":
            return "RGB"
        if any(item.image.has_transparency_data for item in images):
            return "RGBA"
        return "RGB"

    @staticmethod
    def _base_color(spec: CompositionSpec, theme: Theme, mode: str = "RGB") -> Union[str, tuple]:
        if mode == "RGBA":
            return (255, 255, 255, 0)
        if spec.template is Template.BOOK:
            return config.DEFAULT_BACKGROUND
        return theme.background

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------
    def _draw(
        self,
        surface: Image.Image,
        images: Sequence[DecodedImage],
        placements: Sequence[Placement],
        spec: CompositionSpec,
        theme: Theme,
        cancel_event: Optional[Event],
    ) -> None:
        if len(images) != len(placements):
            raise InvalidParameter("placements", len(placements), f"expected {len(images)}")
        draw = ImageDraw.Draw(surface, "RGBA")
        fonts: Dict[str, Font] = {}

        def font(size: int, bold: bool = False) -> Font:
            key = f"{size}:{bold}"
            if key not in fonts:
                fonts[key] = load_font(size, bold)
            return fonts[key]

        self._draw_header(draw, spec, theme, font)
        for decoded, placement in zip(images, placements):
            _raise_if_cancelled(cancel_event, "while drawing")
            self._draw_tile(surface, draw, decoded, placement, spec, theme)
        self._draw_footer(draw, spec, theme, font, bool(placements))

    def _draw_header(self, draw: ImageDraw.ImageDraw, spec: CompositionSpec, theme: Theme, font) -> None:
        width, height = spec.width, spec.height
        if spec.template is Template.COLLAGE:
            draw_text(draw, spec.title, width / 2, config.COLLAGE_TITLE_BASELINE,
                      font(config.COLLAGE_TITLE_FONT_SIZE, True), theme.title_color)
        elif spec.template is Template.BOOK:
            margin = config.BOOK_COVER_MARGIN
            draw.rectangle((margin, margin, width - margin, height - margin), fill=theme.background)
            half_spine = config.BOOK_SPINE_WIDTH / 2
            draw.rectangle((width / 2 - half_spine, margin, width / 2 + half_spine, height - margin),
                           fill=theme.spine_color)
            draw_text(draw, spec.title, width / 2, config.BOOK_TITLE_BASELINE,
                      font(config.TITLE_FONT_SIZE, True), theme.title_color)
        elif spec.template is Template.MASHUP:
            draw_text(draw, spec.title, width / 2, config.MASHUP_TITLE_BASELINE,
                      font(config.TITLE_FONT_SIZE, True), theme.title_color)
            draw_text(draw, spec.subtitle or "", width / 2, config.MASHUP_SUBTITLE_BASELINE,
                      font(config.CAPTION_FONT_SIZE), theme.subtitle_color)

    def _draw_tile(
        self,
        surface: Image.Image,
        draw: ImageDraw.ImageDraw,
        decoded: DecodedImage,
        placement: Placement,
        spec: CompositionSpec,
        theme: Theme,
    ) -> None:
        left, top, right, bottom = placement.box()
        border = config.FRAME_WIDTH
        if spec.template is Template.MASHUP:
            draw.rectangle((left - border, top - border, right + border - 1, bottom + border - 1),
                           fill=config.FILM_FRAME_COLOR)

        tile = fit_image(decoded.image, (right - left, bottom - top), spec.fit_mode)
        if surface.mode == "RGBA":
            # transparent photo surface: the tile's own alpha replaces it
            surface.paste(tile.convert("RGBA"), (left, top))
        elif tile.mode == "RGBA":
            surface.paste(tile, (left, top), tile)
        else:
            surface.paste(tile, (left, top))

        if spec.template is Template.BOOK:
            draw.rectangle((left - border // 2, top - border // 2, right + border // 2 - 1, bottom + border // 2 - 1),
                           outline=theme.frame_color, width=border)
        if decoded.reference.is_video:
            draw.polygon(
                [(left + 10, top + 10), (left + 10, top + 25), (left + 25, top + 17.5)],
                fill=config.VIDEO_ICON_COLOR,
            )

    def _draw_footer(self, draw: ImageDraw.ImageDraw, spec: CompositionSpec, theme: Theme, font,
                     has_tiles: bool) -> None:
        width, height = spec.width, spec.height
        if spec.template is Template.COLLAGE:
            if spec.frame:
                inset = config.COLLAGE_BORDER_INSET
                draw.rectangle((inset, inset, width - inset, height - inset),
                               outline=theme.frame_color, width=config.FRAME_WIDTH)
        elif spec.template is Template.BOOK:
            caption = spec.subtitle or theme.label or theme.caption
            draw_text(draw, caption, width / 2, height - config.BOOK_CAPTION_OFFSET,
                      font(config.BOOK_CAPTION_FONT_SIZE), theme.subtitle_color)
        elif spec.template is Template.MASHUP:
            if has_tiles:
                self._draw_player(draw, width, height, theme)
            draw_text(draw, f"Theme: {theme.caption}", width - 50, height - 20,
                      font(config.CAPTION_FONT_SIZE), theme.title_color, align="right")

    @staticmethod
    def _draw_player(draw: ImageDraw.ImageDraw, width: int, height: int, theme: Theme) -> None:
        """Timeline bar, playhead and play button of the mashup card."""
        margin = config.MASHUP_SIDE_MARGIN
        track_y = height - 100
        draw.rectangle((margin, track_y, width - margin, track_y + 10), fill=theme.track_color)

        cx = width / 2
        draw.polygon([(cx, track_y - 5), (cx + 10, track_y - 5), (cx + 5, track_y + 15)],
                     fill=config.PLAYHEAD_COLOR)

        button_y = height - 150
        draw.ellipse((cx - 30, button_y - 30, cx + 30, button_y + 30), fill=theme.accent_color)
        draw.polygon([(cx - 10, button_y - 10), (cx - 10, button_y + 10), (cx + 15, button_y)],
                     fill=theme.accent_contrast)


def render(
    references: Iterable[ImageReference],
    spec: CompositionSpec,
    cancel_event: Optional[Event] = None,
) -> CompositionResult:
    """One-shot helper using a fresh :class:`Compositor`."""
    return Compositor().render(references, spec, cancel_event)
