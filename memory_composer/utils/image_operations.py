"""Geometry helpers that fit a decoded bitmap into its placement box.

Three fit modes are supported:

``stretch``
    Scale both axes independently to the box, ignoring proportions.  This is
    what an HTML canvas ``drawImage`` call does.
``contain``
    Scale to fit inside the box and pad the rest.  The padding takes the
    image's own edge colour when its four corners agree, so photos on a plain
    backdrop blend into the letterbox.
``cover``
    Scale to fill the box and centre-crop the overflow.

All helpers return new images and never modify their input.
"""

from __future__ import annotations

from PIL import Image, ImageOps

ColorValue = int | tuple[int, ...]

_RESAMPLE = Image.Resampling.LANCZOS
_CORNER_TOLERANCE = 3
_WHITE: dict[str, ColorValue] = {"RGBA": (255, 255, 255, 0), "L": 255, "LA": (255, 0)}


def _matching(colours: list[ColorValue], tolerance: int = _CORNER_TOLERANCE) -> bool:
    """``True`` when every colour is within ``tolerance`` of the first one, per channel."""
    first = colours[0]
    for colour in colours[1:]:
        if isinstance(first, int) or isinstance(colour, int):
            if not (isinstance(first, int) and isinstance(colour, int)) or abs(first - colour) > tolerance:
                return False
        elif len(first) != len(colour) or any(abs(a - b) > tolerance for a, b in zip(first, colour)):
            return False
    return True


def padding_colour(image: Image.Image) -> ColorValue:
    """Colour used to pad ``image`` when letterboxing.

    Returns the corner colour when all four corners match, otherwise white
    (transparent white for images with alpha).
    """
    fallback: ColorValue = _WHITE.get(image.mode, (255, 255, 255))
    right, bottom = image.width - 1, image.height - 1
    if right < 0 or bottom < 0:
        return fallback
    corners = [image.getpixel(point) for point in ((0, 0), (right, 0), (0, bottom), (right, bottom))]
    return corners[0] if _matching(corners) else fallback


def stretch(image: Image.Image, size: tuple[int, int]) -> Image.Image:
    if image.size == tuple(size):
        return image.copy()
    return image.resize(size, _RESAMPLE)


def contain(image: Image.Image, size: tuple[int, int]) -> Image.Image:
    """Letterbox ``image`` into ``size`` keeping its proportions."""
    scaled = ImageOps.contain(image, size, _RESAMPLE)
    if scaled.size == tuple(size):
        return scaled
    box = Image.new(image.mode, size, padding_colour(image))
    box.paste(scaled, ((size[0] - scaled.width) // 2, (size[1] - scaled.height) // 2))
    return box


def cover(image: Image.Image, size: tuple[int, int]) -> Image.Image:
    """Scale ``image`` to cover ``size`` and crop the overflow around the centre."""
    return ImageOps.fit(image, size, _RESAMPLE)


_FITTERS = {
    "stretch": stretch,
    "contain": contain,
    "cover": cover,
}


def fit_image(image: Image.Image, size: tuple[int, int], mode: str = "stretch") -> Image.Image:
    """Fit ``image`` into a ``size`` box using one of the fit modes."""
    box = (max(1, int(size[0])), max(1, int(size[1])))
    try:
        fitter = _FITTERS[mode]
    except KeyError:
        raise ValueError(f"Unknown fit mode: {mode}") from None
    return fitter(image, box)


def flatten(image: Image.Image, background: ColorValue = (255, 255, 255)) -> Image.Image:
    """Composite an image with alpha onto an opaque ``background``."""
    if "A" not in image.getbands():
        return image.convert("RGB")
    rgba = image.convert("RGBA")
    base = Image.new("RGB", rgba.size, background)
    base.paste(rgba, mask=rgba.getchannel("A"))
    return base


__all__ = [
    "contain",
    "cover",
    "fit_image",
    "flatten",
    "padding_colour",
    "stretch",
]
