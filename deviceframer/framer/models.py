"""Core data models for deviceframer.

``Coordinates`` is the leaf placement record of the frame descriptor;
``Frame`` is the flattened catalog entry the rest of the package works
with.  Both support JSON serialization via ``to_dict()`` / ``from_dict()``
using the descriptor's own camelCase keys.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from .errors import CatalogFormatError

logger = logging.getLogger(__name__)

PORTRAIT = "Portrait"
LANDSCAPE = "Landscape"
ORIENTATIONS = (PORTRAIT, LANDSCAPE)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_offset(value) -> int:
    """Parse an offset the way ``parseInt`` would: leading integer wins.

    ``"100"`` → 100, ``" 42px"`` → 42, ``7`` → 7.  Raises
    :class:`CatalogFormatError` when there is no leading integer.
    """
    if isinstance(value, bool):
        raise CatalogFormatError(f"Invalid offset: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    m = _LEADING_INT.match(str(value))
    if not m:
        raise CatalogFormatError(f"Invalid offset: {value!r}")
    return int(m.group(1))


def _dimension(d: dict, key: str, name: str) -> Optional[float]:
    """Return ``d[key]`` when it is a JSON number, else ``None``."""
    value = d.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        logger.warning("Frame %r: ignoring non-numeric %s=%r", name, key, value)
        return None
    return value


@dataclass(frozen=True)
class Coordinates:
    """Placement of a screenshot inside one piece of frame artwork.

    ``x`` / ``y`` are kept as the descriptor strings; use ``offset_x`` /
    ``offset_y`` for the parsed pixel offsets (artwork pixel space).
    ``name`` is the artwork base name (``{name}.png`` and the optional
    ``{name}_mask.png``).
    """
    x: str
    y: str
    name: str
    screenshot_width: Optional[float] = None
    screenshot_height: Optional[float] = None

    @property
    def offset_x(self) -> int:
        return parse_offset(self.x)

    @property
    def offset_y(self) -> int:
        return parse_offset(self.y)

    @property
    def has_screenshot_size(self) -> bool:
        return self.screenshot_width is not None and self.screenshot_height is not None

    def to_dict(self) -> dict:
        d = {"x": self.x, "y": self.y, "name": self.name}
        if self.screenshot_width is not None:
            d["screenshotWidth"] = self.screenshot_width
        if self.screenshot_height is not None:
            d["screenshotHeight"] = self.screenshot_height
        return d

    @staticmethod
    def from_dict(d: dict) -> "Coordinates":
        name = d["name"]
        if not isinstance(name, str) or not name:
            raise CatalogFormatError(f"Invalid frame name: {name!r}")
        coords = Coordinates(
            x=str(d["x"]),
            y=str(d["y"]),
            name=name,
            screenshot_width=_dimension(d, "screenshotWidth", name),
            screenshot_height=_dimension(d, "screenshotHeight", name),
        )
        # Validate eagerly so a bad offset fails the catalog load
        parse_offset(coords.x)
        parse_offset(coords.y)
        return coords


@dataclass(frozen=True)
class Frame:
    """One device / orientation entry of the flattened frame catalog."""
    id: str
    category: str
    model: str
    coordinates: Coordinates
    version: Optional[str] = None
    variant: Optional[str] = None
    orientation: Optional[str] = None  # "Portrait" / "Landscape"

    @property
    def name(self) -> str:
        return self.coordinates.name

    @property
    def label(self) -> str:
        """Human-readable path, e.g. ``iPhone 15 Pro / Black / Portrait``."""
        parts = [self.model, self.version, self.variant, self.orientation]
        return " / ".join(p for p in parts if p)

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "category": self.category,
            "model": self.model,
            "coordinates": self.coordinates.to_dict(),
        }
        for key in ("version", "variant", "orientation"):
            value = getattr(self, key)
            if value is not None:
                d[key] = value
        return d

    @staticmethod
    def from_dict(d: dict) -> "Frame":
        return Frame(
            id=d["id"],
            category=d["category"],
            model=d["model"],
            coordinates=Coordinates.from_dict(d["coordinates"]),
            version=d.get("version"),
            variant=d.get("variant"),
            orientation=d.get("orientation"),
        )


def frame_id(*segments: Optional[str]) -> str:
    """Join the present path segments into a stable frame id."""
    return "-".join(s for s in segments if s is not None)
