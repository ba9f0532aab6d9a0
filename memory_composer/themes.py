from dataclasses import asdict, dataclass, fields
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Union
import logging
from pathlib import Path
import json

from PIL import ImageColor

from .errors import InvalidParameter

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Theme:
    """Colour scheme used for backgrounds, text and frames."""

    name: str
    background: str = "#ffffff"
    title_color: str = "#333333"
    subtitle_color: str = "#666666"
    frame_color: str = "#333333"
    track_color: str = "#dddddd"
    accent_color: str = "#333333"
    accent_contrast: str = "#ffffff"
    spine_color: str = "#d0d0d0"
    label: str = ""

    def __post_init__(self) -> None:
        self._validate_colors()

    def _validate_colors(self) -> None:
        """
        Validate every colour field.

        Raises:
            InvalidParameter: If a colour string cannot be parsed
        """
        if not self.name:
            raise InvalidParameter("theme", self.name, "theme needs a name")
        for f in fields(self):
            if not f.name.endswith(("color", "contrast")) and f.name != "background":
                continue
            value = getattr(self, f.name)
            try:
                ImageColor.getrgb(value)
            except (ValueError, AttributeError):
                raise InvalidParameter(f.name, value, "not a colour") from None

    @property
    def caption(self) -> str:
        """Human readable name, e.g. ``"Vintage"``."""
        return self.label or self.name.replace("_", " ").title()

    def to_dict(self) -> Dict[str, str]:
        """Convert the theme to a dictionary representation."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, str]) -> 'Theme':
        """Create a theme from a dictionary representation."""
        if "name" not in data:
            raise ValueError("Missing required key: name")
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


BUILTIN_THEMES: Mapping[str, Theme] = MappingProxyType({
    "classic": Theme("classic"),
    "modern": Theme("modern"),
    "vintage": Theme("vintage", background="#f5e8c0"),
    "minimal": Theme("minimal", background="#f0f0f0"),
    "bold": Theme(
        "bold",
        background="#2a2a2a",
        title_color="#ffffff",
        subtitle_color="#cccccc",
        track_color="#555555",
        accent_color="#ffffff",
        accent_contrast="#333333",
    ),
    "photobook": Theme("photobook", background="#f0f0f0", subtitle_color="#555555", label="Photo Book"),
    "flipbook": Theme("flipbook", background="#e0e0ff", subtitle_color="#555555", label="Digital Flipbook"),
})


class ThemeRegistry:
    """Manages theme configurations.

    Each registry starts from :data:`BUILTIN_THEMES`; custom themes added to
    one registry are invisible to every other registry, so two callers can
    customise themes without stepping on each other.

    Names are case-insensitive.  A name can only be bound to a different
    theme by removing it first or by loading with ``replace=True``.
    """

    def __init__(self, themes: Optional[Mapping[str, Theme]] = None):
        self._themes: Dict[str, Theme] = dict(BUILTIN_THEMES if themes is None else themes)

    def get_theme(self, theme: Union[str, Theme]) -> Theme:
        """Get a theme by name; ``Theme`` instances pass straight through."""
        if isinstance(theme, Theme):
            return theme
        try:
            return self._themes[_key(theme)]
        except KeyError:
            LOGGER.error("Theme '%s' not found", theme)
            raise InvalidParameter("theme", theme, "unknown theme") from None

    def get_theme_names(self) -> List[str]:
        """Get a sorted list of all available theme names."""
        return sorted(self._themes)

    def _conflicts(self, candidates: Mapping[str, Theme]) -> List[str]:
        return [key for key, theme in candidates.items() if key in self._themes and self._themes[key] != theme]

    def add_custom_theme(self, theme: Theme) -> None:
        """Register ``theme``; a name already in use raises ``ValueError``."""
        key = _key(theme.name)
        if key in self._themes:
            raise ValueError(f"Theme '{theme.name}' already exists")
        self._themes[key] = theme
        LOGGER.info("Added theme %s", theme.name)

    def remove_theme(self, name: str) -> None:
        if self._themes.pop(_key(name), None) is None:
            raise ValueError(f"Theme '{name}' not found")
        LOGGER.info("Removed theme %s", name)

    def save_themes(self, file_path: Union[str, Path]) -> Path:
        """Write every registered theme to ``file_path`` as a JSON object keyed by name."""
        path = Path(file_path)
        payload = {key: theme.to_dict() for key, theme in sorted(self._themes.items())}
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            LOGGER.error("Failed to save themes to %s: %s", path, e)
            raise
        LOGGER.info("Saved %d themes to %s", len(payload), path)
        return path

    def load_themes(self, file_path: Union[str, Path], replace: bool = False) -> List[str]:
        """Add the themes stored in ``file_path`` and return their names.

        The file is applied all or nothing: a malformed entry leaves the
        registry untouched.  Entries identical to a registered theme are
        accepted as is; an entry that would rebind a name to a different
        theme raises ``ValueError`` unless ``replace`` is true.

        Raises:
            FileNotFoundError: If the file does not exist
            InvalidParameter: If the file is not a JSON object of theme entries
            ValueError: If an entry clashes with a registered theme
        """
        path = Path(file_path)
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            loaded = _parse_themes(data)
            clashes = [] if replace else self._conflicts(loaded)
            if clashes:
                raise ValueError(f"Themes already registered with different colours: {', '.join(clashes)}")
        except (OSError, ValueError) as e:
            LOGGER.error("Failed to load themes from %s: %s", path, e)
            raise
        self._themes.update(loaded)
        LOGGER.info("Loaded %d themes from %s", len(loaded), path)
        return sorted(loaded)


def _key(name: str) -> str:
    return str(name).strip().lower()


def _parse_themes(data: object) -> Dict[str, Theme]:
    if not isinstance(data, dict):
        raise InvalidParameter("themes", type(data).__name__, "expected a JSON object")
    parsed: Dict[str, Theme] = {}
    for name, entry in data.items():
        if not isinstance(entry, dict):
            raise InvalidParameter("themes", name, "entry is not an object")
        theme = Theme.from_dict({"name": name, **entry})
        parsed[_key(theme.name)] = theme
    return parsed


def get_theme(theme: Union[str, Theme]) -> Theme:
    """Resolve ``theme`` against the built-in themes only."""
    return ThemeRegistry().get_theme(theme)
