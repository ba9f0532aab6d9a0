"""Photo effect pipeline.

Effects are described by one immutable :class:`EffectParameters` value and
applied by :func:`apply_effects` in a fixed order:

1. colour filters (brightness, contrast, saturate, hue-rotate, blur, sepia,
   grayscale), each step clamped to 0..255 before the next one exactly like
   a CSS ``filter`` chain;
2. a warm "vintage" tint, multiply blended over the surface;
3. a radial "vignette", multiply blended from the centre outwards.

Changing that order changes the output, so the order is part of the
contract.  Every function returns a new image and leaves its input alone.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, fields, replace as dataclass_replace
from numbers import Real
from typing import Any, Callable, Mapping

from PIL import Image, ImageChops, ImageFilter

from .. import config
from ..errors import InvalidParameter

LOGGER = logging.getLogger(__name__)

Matrix = tuple[float, ...]


def _clamp(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidParameter(name, value, "expected a number")
    number = float(value)
    if math.isnan(number):
        raise InvalidParameter(name, value, "NaN cannot be clamped")
    low, high, _ = config.EFFECT_RANGES[name]
    return min(max(number, low), high)


@dataclass(frozen=True, slots=True)
class EffectParameters:
    """Named effect knobs, clamped to their ranges on construction.

    Percentages use the photo editor conventions: ``100`` is neutral for
    brightness, contrast and saturation; ``0`` is neutral for everything
    else.  ``hue`` is in degrees and ``blur`` in pixels.
    """

    brightness: float = 100.0
    contrast: float = 100.0
    saturation: float = 100.0
    hue: float = 0.0
    blur: float = 0.0
    sepia: float = 0.0
    grayscale: float = 0.0
    vintage: float = 0.0
    vignette: float = 0.0

    def __post_init__(self) -> None:
        for f in fields(self):
            object.__setattr__(self, f.name, _clamp(f.name, getattr(self, f.name)))

    @property
    def is_identity(self) -> bool:
        return all(
            getattr(self, name) == identity
            for name, (_, _, identity) in config.EFFECT_RANGES.items()
        )

    def replace(self, **changes: Any) -> "EffectParameters":
        """Return a variant with ``changes`` applied (and clamped)."""
        unknown = set(changes) - set(config.EFFECT_RANGES)
        if unknown:
            raise InvalidParameter("effects", sorted(unknown), "unknown effect")
        return dataclass_replace(self, **changes)

    def to_dict(self) -> dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EffectParameters":
        """Build parameters from a slider payload; missing keys keep defaults."""
        unknown = set(data) - set(config.EFFECT_RANGES)
        if unknown:
            raise InvalidParameter("effects", sorted(unknown), "unknown effect")
        return cls(**dict(data))

    def to_css_filter(self) -> str:
        """Equivalent CSS ``filter`` string, handy for live previews."""
        return " ".join(
            [
                f"brightness({self.brightness:g}%)",
                f"contrast({self.contrast:g}%)",
                f"saturate({self.saturation:g}%)",
                f"hue-rotate({self.hue:g}deg)",
                f"blur({self.blur:g}px)",
                f"sepia({self.sepia:g}%)",
                f"grayscale({self.grayscale:g}%)",
            ]
        )


IDENTITY = EffectParameters()

PRESETS: dict[str, EffectParameters] = {
    "Original": IDENTITY,
    "Vintage": EffectParameters(sepia=40, contrast=110, saturation=80, vintage=30),
    "Black & White": EffectParameters(grayscale=100, contrast=120),
    "Warm": EffectParameters(hue=10, saturation=110, brightness=105),
    "Cool": EffectParameters(hue=-10, saturation=90, brightness=95),
    "Dramatic": EffectParameters(contrast=140, saturation=120, vignette=30),
    "Soft": EffectParameters(blur=1, brightness=110, contrast=90),
    "Vibrant": EffectParameters(saturation=150, contrast=115, brightness=105),
}


def preset_names() -> list[str]:
    return list(PRESETS)


def get_preset(name: str) -> EffectParameters:
    """Look up a preset by name (case-insensitive)."""
    for preset_name, preset in PRESETS.items():
        if preset_name.lower() == str(name).strip().lower():
            return preset
    raise InvalidParameter("preset", name, "unknown preset")


# ----------------------------------------------------------------------
# Colour matrices (rows of r, g, b, offset) as used by CSS filter effects
# ----------------------------------------------------------------------
def _linear(slope: float, intercept: float = 0.0) -> Matrix:
    offset = intercept * 255.0
    return (
        slope, 0.0, 0.0, offset,
        0.0, slope, 0.0, offset,
        0.0, 0.0, slope, offset,
    )


def brightness_matrix(amount: float) -> Matrix:
    return _linear(amount / 100.0)


def contrast_matrix(amount: float) -> Matrix:
    slope = amount / 100.0
    return _linear(slope, 0.5 - 0.5 * slope)


def saturate_matrix(amount: float) -> Matrix:
    s = amount / 100.0
    return (
        0.213 + 0.787 * s, 0.715 - 0.715 * s, 0.072 - 0.072 * s, 0.0,
        0.213 - 0.213 * s, 0.715 + 0.285 * s, 0.072 - 0.072 * s, 0.0,
        0.213 - 0.213 * s, 0.715 - 0.715 * s, 0.072 + 0.928 * s, 0.0,
    )


def hue_rotate_matrix(degrees: float) -> Matrix:
    angle = math.radians(degrees)
    c, s = math.cos(angle), math.sin(angle)
    return (
        0.213 + c * 0.787 - s * 0.213, 0.715 - c * 0.715 - s * 0.715, 0.072 - c * 0.072 + s * 0.928, 0.0,
        0.213 - c * 0.213 + s * 0.143, 0.715 + c * 0.285 + s * 0.140, 0.072 - c * 0.072 - s * 0.283, 0.0,
        0.213 - c * 0.213 - s * 0.787, 0.715 - c * 0.715 + s * 0.715, 0.072 + c * 0.928 + s * 0.072, 0.0,
    )


def sepia_matrix(amount: float) -> Matrix:
    inv = 1.0 - amount / 100.0
    return (
        0.393 + 0.607 * inv, 0.769 - 0.769 * inv, 0.189 - 0.189 * inv, 0.0,
        0.349 - 0.349 * inv, 0.686 + 0.314 * inv, 0.168 - 0.168 * inv, 0.0,
        0.272 - 0.272 * inv, 0.534 - 0.534 * inv, 0.131 + 0.869 * inv, 0.0,
    )


def grayscale_matrix(amount: float) -> Matrix:
    inv = 1.0 - amount / 100.0
    return (
        0.2126 + 0.7874 * inv, 0.7152 - 0.7152 * inv, 0.0722 - 0.0722 * inv, 0.0,
        0.2126 - 0.2126 * inv, 0.7152 + 0.2848 * inv, 0.0722 - 0.0722 * inv, 0.0,
        0.2126 - 0.2126 * inv, 0.7152 - 0.7152 * inv, 0.0722 + 0.9278 * inv, 0.0,
    )


def _matrix_filter(builder: Callable[[float], Matrix]) -> Callable[[Image.Image, float], Image.Image]:
    def _apply(image: Image.Image, amount: float) -> Image.Image:
        return image.convert("RGB", builder(amount))

    return _apply


def gaussian_blur(image: Image.Image, radius: float) -> Image.Image:
    """Spatial blur; ``radius`` is the standard deviation in pixels."""
    return image.filter(ImageFilter.GaussianBlur(radius))


# Order matters: it mirrors the CSS filter chain of the photo editor.
_COLOR_FILTERS: tuple[tuple[str, Callable[[Image.Image, float], Image.Image]], ...] = (
    ("brightness", _matrix_filter(brightness_matrix)),
    ("contrast", _matrix_filter(contrast_matrix)),
    ("saturation", _matrix_filter(saturate_matrix)),
    ("hue", _matrix_filter(hue_rotate_matrix)),
    ("blur", gaussian_blur),
    ("sepia", _matrix_filter(sepia_matrix)),
    ("grayscale", _matrix_filter(grayscale_matrix)),
)


def apply_color_filters(image: Image.Image, params: EffectParameters) -> Image.Image:
    """Stage 1: run the per-pixel and blur filters on an RGB image."""
    result = image
    for name, func in _COLOR_FILTERS:
        amount = getattr(params, name)
        if amount == config.EFFECT_RANGES[name][2]:
            continue
        result = func(result, amount)
    return result


def apply_vintage(image: Image.Image, intensity: float) -> Image.Image:
    """Stage 2: multiply blend the warm tint with alpha ``intensity/100*0.3``."""
    if intensity <= 0:
        return image
    alpha = intensity / 100.0 * config.VINTAGE_MAX_ALPHA
    # source-over of a multiply blend on an opaque backdrop: Cb * (1 - a + a*Cs)
    tint = tuple(int(round(255 * (1 - alpha) + alpha * channel)) for channel in config.VINTAGE_TINT)
    return ImageChops.multiply(image, Image.new("RGB", image.size, tint))


# Image.radial_gradient is 0 at pixel (128, 128) and rises by sqrt(2) per pixel
_GRADIENT_CENTRE = 128.5
_GRADIENT_RADIUS = 128
_GRADIENT_LEVEL = _GRADIENT_RADIUS * math.sqrt(2)


def vignette_mask(size: tuple[int, int], intensity: float) -> Image.Image:
    """Return an ``L`` mask of per-pixel multipliers (255 = untouched).

    The darkening grows linearly from nothing at the centre to
    ``intensity/100*0.6`` at ``0.6 * max(width, height)`` and holds beyond.
    """
    width, height = size
    peak = intensity / 100.0 * config.VIGNETTE_MAX_ALPHA
    radius = config.VIGNETTE_RADIUS_FACTOR * max(width, height)
    scale = radius / _GRADIENT_RADIUS
    box = (
        _GRADIENT_CENTRE - (width / 2) / scale,
        _GRADIENT_CENTRE - (height / 2) / scale,
        _GRADIENT_CENTRE + (width / 2) / scale,
        _GRADIENT_CENTRE + (height / 2) / scale,
    )
    gradient = Image.radial_gradient("L").resize(size, Image.Resampling.BILINEAR, box=box)
    lut = [int(round(255 * (1 - peak * min(1.0, level / _GRADIENT_LEVEL)))) for level in range(256)]
    return gradient.point(lut)


def apply_vignette(image: Image.Image, intensity: float) -> Image.Image:
    """Stage 3: multiply blend the radial darkening."""
    if intensity <= 0:
        return image
    mask = vignette_mask(image.size, intensity)
    return ImageChops.multiply(image, Image.merge("RGB", (mask, mask, mask)))


def apply_effects(image: Image.Image, params: EffectParameters) -> Image.Image:
    """Run the full pipeline on ``image`` and return a new image.

    The alpha channel, if any, is carried through untouched.  With identity
    parameters a plain copy is returned so the output is pixel-equal to the
    input.
    """
    if not isinstance(params, EffectParameters):
        raise InvalidParameter("effects", params, "expected EffectParameters")
    if params.is_identity:
        return image.copy()
    if image.width == 0 or image.height == 0:
        raise InvalidParameter("image", image.size, "cannot filter an empty image")

    alpha = image.getchannel("A") if "A" in image.getbands() else None
    rgb = image.convert("RGB")
    rgb = apply_color_filters(rgb, params)
    rgb = apply_vintage(rgb, params.vintage)
    rgb = apply_vignette(rgb, params.vignette)
    if alpha is not None:
        rgb.putalpha(alpha)
    LOGGER.debug("Applied effects %s to %sx%s image", params.to_css_filter(), *image.size)
    return rgb


__all__ = [
    "EffectParameters",
    "IDENTITY",
    "PRESETS",
    "apply_color_filters",
    "apply_effects",
    "apply_vignette",
    "apply_vintage",
    "get_preset",
    "preset_names",
    "vignette_mask",
]
