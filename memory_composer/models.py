"""Value types shared by the loader, layout engine, compositor and exporter.

Everything here is created fresh for a single render call and is immutable
once handed to the next stage, so concurrent renders never share state.
"""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from PIL import Image

from . import config
from .errors import ImageDecodeFailure, InvalidParameter
from .utils.effects import EffectParameters
from .utils.validation import validate_dimensions

Source = Union[bytes, str, Path]


class LayoutKind(str, Enum):
    """Geometric strategy used to place images on the canvas."""

    GRID = "grid"
    MOSAIC = "mosaic"
    CIRCULAR = "circular"
    DIAGONAL = "diagonal"
    HEART = "heart"
    FILMSTRIP = "filmstrip"
    COVER = "cover"
    COLUMNS = "columns"
    ROWS = "rows"
    FEATURED = "featured"

    @classmethod
    def parse(cls, value: Union[str, "LayoutKind"]) -> "LayoutKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidParameter("layout", value, "unknown layout kind") from None


class Template(str, Enum):
    """Decoration set drawn around the placed images."""

    COLLAGE = "collage"
    BOOK = "book"
    MASHUP = "mashup"
    PHOTO = "photo"

    @classmethod
    def parse(cls, value: Union[str, "Template"]) -> "Template":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidParameter("template", value, "unknown template") from None


FIT_MODES = ("stretch", "contain", "cover")


@dataclass(frozen=True, slots=True)
class ImageReference:
    """Opaque locator for one source image.

    ``source`` may be raw bytes, a ``data:`` URL, an ``http(s)`` URL or a
    local path.  ``media_type`` is ``"photo"`` or ``"video"``; video items
    are drawn from their poster frame and decorated with a play icon.
    """

    source: Source
    media_type: str = "photo"
    label: Optional[str] = None

    @property
    def kind(self) -> str:
        """Return ``bytes``, ``data``, ``url`` or ``path``."""
        if isinstance(self.source, (bytes, bytearray, memoryview)):
            return "bytes"
        text = str(self.source)
        lowered = text[:8].lower()
        if lowered.startswith("data:"):
            return "data"
        if lowered.startswith(("http://", "https://")):
            return "url"
        return "path"

    @property
    def is_video(self) -> bool:
        return self.media_type == "video"

    def digest(self) -> str:
        """Stable key used by the optional decode cache."""
        if self.kind == "bytes":
            payload = bytes(self.source)
        else:
            payload = str(self.source).encode("utf-8")
        return hashlib.md5(payload).hexdigest()

    def __str__(self) -> str:
        if self.label:
            return self.label
        if self.kind == "bytes":
            return f"<{len(self.source)} bytes>"
        text = str(self.source)
        if self.kind == "data":
            return text[:32] + "..."
        return text

    @classmethod
    def from_bytes(cls, data: bytes, *, media_type: str = "photo", label: Optional[str] = None) -> "ImageReference":
        return cls(bytes(data), media_type=media_type, label=label)

    @classmethod
    def from_data_url(cls, data: bytes, mime_type: str = "image/png", **kwargs: Any) -> "ImageReference":
        encoded = base64.b64encode(data).decode("ascii")
        return cls(f"data:{mime_type};base64,{encoded}", **kwargs)


def references_from_records(
    records: Sequence[Union[Mapping[str, Any], Any]],
    *,
    include_video: bool = False,
) -> List[ImageReference]:
    """Turn memory records into references, keeping only drawable ones.

    Records are mappings or objects exposing ``id``, ``type`` and
    ``mediaUrl`` (``media_url`` is accepted too).  Records without media or
    of another type are skipped; input order is preserved.
    """
    allowed = {"photo", "video"} if include_video else {"photo"}
    references: List[ImageReference] = []
    for record in records:
        if isinstance(record, Mapping):
            getter = record.get
        else:
            def getter(key: str, default: Any = None, _record: Any = record) -> Any:
                return getattr(_record, key, default)
        record_type = getter("type")
        media_url = getter("mediaUrl") or getter("media_url")
        if record_type not in allowed or not media_url:
            continue
        record_id = getter("id")
        references.append(
            ImageReference(
                media_url,
                media_type=record_type,
                label=str(record_id) if record_id is not None else None,
            )
        )
    return references


@dataclass(slots=True)
class DecodedImage:
    """A bitmap decoded by the loader; the compositor only reads it."""

    reference: ImageReference
    image: Image.Image
    index: int = 0

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


@dataclass(frozen=True, slots=True)
class LoadFailure:
    """Why the reference at ``index`` was excluded from the batch."""

    index: int
    reference: ImageReference
    error: ImageDecodeFailure

    @property
    def reason(self) -> str:
        return self.error.reason


@dataclass(slots=True)
class LoadReport:
    """Partial result of a batch load: decoded images and failures in input order."""

    succeeded: List[DecodedImage] = field(default_factory=list)
    failed: List[LoadFailure] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded_count,
            "failed": self.failed_count,
            "failures": [
                {"index": f.index, "reference": str(f.reference), "reason": f.reason}
                for f in self.failed
            ],
        }


@dataclass(frozen=True, slots=True)
class Placement:
    """Destination rectangle for one image in surface coordinates."""

    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def box(self) -> Tuple[int, int, int, int]:
        """Integer ``(left, top, right, bottom)`` box for Pillow drawing."""
        left = int(round(self.x))
        top = int(round(self.y))
        return left, top, max(left + 1, int(round(self.right))), max(top + 1, int(round(self.bottom)))

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True, slots=True)
class LayoutParams:
    """Algorithm specific knobs; defaults reproduce the classic layouts."""

    padding: float = config.GRID_PADDING
    tile_sizes: Tuple[int, ...] = config.MOSAIC_TILE_SIZES
    seed: Optional[int] = None
    radius_factor: float = config.CIRCULAR_RADIUS_FACTOR
    circular_tile: float = config.CIRCULAR_TILE_SIZE
    diagonal_tile: float = config.DIAGONAL_TILE_SIZE
    heart_scale: float = config.HEART_SCALE_FACTOR
    heart_tile: float = config.HEART_TILE_SIZE
    frame_size: Tuple[int, int] = config.FILMSTRIP_FRAME_SIZE
    frame_spacing: float = config.FILMSTRIP_SPACING
    frame_columns: int = config.FILMSTRIP_COLUMNS
    frame_origin: Tuple[float, float] = config.FILMSTRIP_ORIGIN
    cover_tile: float = config.COVER_TILE_SIZE
    cover_gap: float = config.COVER_GAP
    cover_top: float = config.COVER_TOP
    strip_tracks: int = config.STRIP_MAX_TRACKS
    strip_margin: float = config.STRIP_MARGIN
    strip_gutter: float = config.STRIP_GUTTER
    featured_strip: int = config.FEATURED_STRIP_LENGTH

    def __post_init__(self) -> None:
        if self.padding < 0:
            raise InvalidParameter("padding", self.padding, "must be >= 0")
        if not self.tile_sizes or any(size <= 0 for size in self.tile_sizes):
            raise InvalidParameter("tile_sizes", self.tile_sizes, "need positive sizes")
        if self.radius_factor < 0:
            raise InvalidParameter("radius_factor", self.radius_factor, "must be >= 0")
        if self.heart_scale <= 0:
            raise InvalidParameter("heart_scale", self.heart_scale, "must be > 0")
        if self.frame_columns <= 0:
            raise InvalidParameter("frame_columns", self.frame_columns, "must be > 0")
        for name in ("strip_tracks", "featured_strip"):
            if getattr(self, name) <= 0:
                raise InvalidParameter(name, getattr(self, name), "must be > 0")
        if self.strip_margin < 0 or self.strip_gutter < 0:
            raise InvalidParameter("strip_margin", (self.strip_margin, self.strip_gutter), "must be >= 0")
        for name in ("circular_tile", "diagonal_tile", "heart_tile", "cover_tile"):
            if getattr(self, name) <= 0:
                raise InvalidParameter(name, getattr(self, name), "must be > 0")


@dataclass(frozen=True, slots=True)
class CompositionSpec:
    """Everything the caller chose for one render."""

    title: str = ""
    theme: Any = "classic"
    layout: Union[LayoutKind, str] = LayoutKind.GRID
    layout_params: LayoutParams = field(default_factory=LayoutParams)
    effects: Optional[EffectParameters] = None
    width: int = config.DEFAULT_WIDTH
    height: int = config.DEFAULT_HEIGHT
    template: Union[Template, str] = Template.COLLAGE
    subtitle: Optional[str] = None
    frame: Optional[bool] = None
    fit_mode: str = "stretch"
    format: str = "PNG"
    quality: int = config.QUALITY_DEFAULT

    @classmethod
    def collage(cls, title: str = "", layout: Union[LayoutKind, str] = LayoutKind.GRID, **overrides: Any) -> "CompositionSpec":
        return cls(title=title, layout=layout, template=Template.COLLAGE, **overrides)

    @classmethod
    def book(cls, title: str, book_type: str = "photobook", **overrides: Any) -> "CompositionSpec":
        """Book cover: up to four photos on a cover panel with a spine."""
        overrides.setdefault("layout", LayoutKind.COVER)
        return cls(title=title, theme=book_type, template=Template.BOOK, **overrides)

    @classmethod
    def mashup(
        cls,
        title: str,
        theme: Any = "modern",
        duration: Optional[int] = None,
        **overrides: Any,
    ) -> "CompositionSpec":
        """Mashup card: a filmstrip of up to six frames with a timeline."""
        overrides.setdefault("layout", LayoutKind.FILMSTRIP)
        overrides.setdefault("height", config.MASHUP_HEIGHT)
        if duration is not None:
            overrides.setdefault("subtitle", f"Duration: {duration} seconds")
        return cls(title=title, theme=theme, template=Template.MASHUP, **overrides)

    def validated(self) -> "CompositionSpec":
        """Return a copy with enums resolved, raising ``InvalidParameter`` on bad input."""
        validate_dimensions(self.width, self.height)
        if self.fit_mode not in FIT_MODES:
            raise InvalidParameter("fit_mode", self.fit_mode, f"expected one of {FIT_MODES}")
        if not isinstance(self.layout_params, LayoutParams):
            raise InvalidParameter("layout_params", self.layout_params)
        if self.effects is not None and not isinstance(self.effects, EffectParameters):
            raise InvalidParameter("effects", self.effects)
        if isinstance(self.quality, bool) or not isinstance(self.quality, int):
            raise InvalidParameter("quality", self.quality, "must be an integer")
        if not config.QUALITY_MIN <= self.quality <= config.QUALITY_MAX:
            raise InvalidParameter("quality", self.quality)
        return replace(
            self,
            layout=LayoutKind.parse(self.layout),
            template=Template.parse(self.template),
            format=str(self.format).upper(),
        )


@dataclass(slots=True)
class CompositionResult:
    """Encoded output of a render plus the realised placements."""

    data: bytes
    format: str
    mime_type: str
    width: int
    height: int
    placements: List[Placement] = field(default_factory=list)
    report: Optional[LoadReport] = None

    def data_url(self) -> str:
        from .exporter import to_data_url

        return to_data_url(self.data, self.format)

    def save(self, path: Union[str, Path]) -> Path:
        """Write the encoded buffer to ``path`` (caller-triggered download)."""
        from .exporter import save

        return save(self.data, path)

    def to_image(self) -> Image.Image:
        """Decode the buffer again; mostly useful in tests and previews."""
        import io

        with Image.open(io.BytesIO(self.data)) as img:
            img.load()
            return img.copy()
