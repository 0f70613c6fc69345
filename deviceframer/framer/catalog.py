"""Frame catalog — flattens the nested device-frame descriptor.

The descriptor (``Frames.json``) is keyed category → model → version →
variant → orientation, but any level may end early with a coordinates
record.  Each node is classified by shape into a :class:`Leaf` or a
:class:`Branch`; a mapping that carries ``x``, ``y`` and ``name`` is a
leaf even when it also has nested keys.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple, Union

from .errors import CatalogFormatError
from .models import ORIENTATIONS, Coordinates, Frame, frame_id

logger = logging.getLogger(__name__)

SCHEMA_VERSION_KEY = "version"

# Path levels below the category, in nesting order
_LEVELS = ("model", "version", "variant", "orientation")

_LEAF_KEYS = ("x", "y", "name")
_RANGE_START = re.compile(r"^(\d+)(?:-\d+)?$")
_LEADING_NUMBER = re.compile(r"^\s*[+-]?(\d+)")


# ── Tree nodes ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class Leaf:
    coordinates: Coordinates


@dataclass(frozen=True)
class Branch:
    children: Dict[str, object]


Node = Union[Leaf, Branch]


def classify(value: object, path: Tuple[str, ...]) -> Node:
    """Classify a raw descriptor value by shape."""
    if not isinstance(value, dict):
        raise CatalogFormatError(
            f"{'/'.join(path)}: expected an object, got {type(value).__name__}"
        )
    if all(k in value for k in _LEAF_KEYS):
        try:
            return Leaf(Coordinates.from_dict(value))
        except CatalogFormatError as exc:
            raise CatalogFormatError(f"{'/'.join(path)}: {exc}") from exc
    return Branch(value)


# ── Flattening ──────────────────────────────────────────────────────

def _walk(node: Node, category: str, path: Tuple[str, ...]) -> Iterator[Frame]:
    """Yield frames below *node*; *path* holds the segments after the category."""
    if isinstance(node, Leaf):
        fields = dict(zip(_LEVELS, path))
        orientation = fields.get("orientation")
        if orientation is not None and orientation not in ORIENTATIONS:
            raise CatalogFormatError(
                f"{category}/{'/'.join(path)}: unknown orientation {orientation!r}"
            )
        yield Frame(
            id=frame_id(category, *path),
            category=category,
            model=fields["model"],
            version=fields.get("version"),
            variant=fields.get("variant"),
            orientation=orientation,
            coordinates=node.coordinates,
        )
        return

    if len(path) >= len(_LEVELS):
        raise CatalogFormatError(
            f"{category}/{'/'.join(path)}: nesting deeper than orientation level"
        )
    if not node.children:
        logger.debug("Empty descriptor node: %s/%s", category, "/".join(path))
    for key, child in node.children.items():
        child_path = path + (str(key),)
        yield from _walk(classify(child, (category,) + child_path), category, child_path)


def version_sort_key(version: Optional[str]) -> Tuple:
    """Numeric versions first (by the range's first number), then
    non-numeric versions, then unversioned entries."""
    if version is None:
        return (2,)
    m = _RANGE_START.match(version) or _LEADING_NUMBER.match(version)
    if m:
        return (0, int(m.group(1)))
    return (1,)


def _text_key(value: str) -> Tuple[str, str]:
    # Case-insensitive first ("iPad" before "Watch"), raw value breaks ties
    return (value.casefold(), value)


def frame_sort_key(frame: Frame) -> Tuple:
    return (_text_key(frame.category), _text_key(frame.model),
            version_sort_key(frame.version))


def parse_frames(tree: dict) -> List[Frame]:
    """Flatten a descriptor tree into a sorted list of :class:`Frame`.

    Raises :class:`CatalogFormatError` on structural violations and on
    duplicate frame ids.
    """
    if not isinstance(tree, dict):
        raise CatalogFormatError("Frame descriptor must be a JSON object")

    frames: List[Frame] = []
    for category, devices in tree.items():
        if category == SCHEMA_VERSION_KEY:
            continue
        node = classify(devices, (category,))
        if isinstance(node, Leaf):
            raise CatalogFormatError(f"{category}: category has no device models")
        for key, child in node.children.items():
            frames.extend(_walk(classify(child, (category, key)), category, (key,)))

    seen: Dict[str, Frame] = {}
    for f in frames:
        if f.id in seen:
            raise CatalogFormatError(f"Duplicate device definition: {f.id}")
        seen[f.id] = f

    frames.sort(key=frame_sort_key)
    return frames


# ── Catalog ─────────────────────────────────────────────────────────

class FrameCatalog:
    """Immutable, ordered collection of frames parsed from one descriptor."""

    def __init__(self, frames: List[Frame], schema_version: Optional[str] = None) -> None:
        self._frames: Tuple[Frame, ...] = tuple(frames)
        self._by_id = {f.id: f for f in self._frames}
        self.schema_version = schema_version

    @classmethod
    def from_tree(cls, tree: dict) -> "FrameCatalog":
        frames = parse_frames(tree)
        version = tree.get(SCHEMA_VERSION_KEY)
        logger.info("Loaded %d frames (descriptor version %s)", len(frames), version)
        return cls(frames, str(version) if version is not None else None)

    @classmethod
    def load(cls, path: str) -> "FrameCatalog":
        """Read and parse a ``Frames.json`` descriptor file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                tree = json.loads(f.read())
        except OSError as exc:
            raise CatalogFormatError(f"Cannot read frame descriptor {path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise CatalogFormatError(f"Invalid JSON in {path}: {exc}") from exc
        return cls.from_tree(tree)

    @property
    def frames(self) -> Tuple[Frame, ...]:
        return self._frames

    def get(self, frame_id: str) -> Frame:
        return self._by_id[frame_id]

    def __contains__(self, frame_id: object) -> bool:
        return frame_id in self._by_id

    def __iter__(self) -> Iterator[Frame]:
        return iter(self._frames)

    def __len__(self) -> int:
        return len(self._frames)
