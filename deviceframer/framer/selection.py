"""Interactive drill-down over the catalog.

Mirrors the settings panel: category → model → version → variant →
orientation, each list in catalog order.  Unspecified levels resolve to
their first option; among orientations ``Portrait`` wins.
"""

from typing import Iterable, List, Optional, Sequence

from .models import PORTRAIT, Frame


def _distinct(values: Iterable[Optional[str]]) -> List[str]:
    out: List[str] = []
    for v in values:
        if v is not None and v not in out:
            out.append(v)
    return out


def categories(frames: Sequence[Frame]) -> List[str]:
    return _distinct(f.category for f in frames)


def models_for(frames: Sequence[Frame], category: str) -> List[str]:
    return _distinct(f.model for f in frames if f.category == category)


def _in_model(frames: Sequence[Frame], category: str, model: str) -> List[Frame]:
    return [f for f in frames if f.category == category and f.model == model]


def versions_for(frames: Sequence[Frame], category: str, model: str) -> List[str]:
    return _distinct(f.version for f in _in_model(frames, category, model))


def _in_version(frames: Sequence[Frame], category: str, model: str,
                version: Optional[str]) -> List[Frame]:
    in_model = _in_model(frames, category, model)
    # Models without versions skip the version filter
    if not versions_for(frames, category, model):
        return in_model
    return [f for f in in_model if f.version == version]


def variants_for(frames: Sequence[Frame], category: str, model: str,
                 version: Optional[str] = None) -> List[str]:
    return _distinct(f.variant for f in _in_version(frames, category, model, version))


def orientations_for(frames: Sequence[Frame], category: str, model: str,
                     version: Optional[str] = None,
                     variant: Optional[str] = None) -> List[Frame]:
    """Frames of one variant that carry an orientation."""
    return [
        f for f in _in_version(frames, category, model, version)
        if f.variant == variant and f.orientation
    ]


def preferred_frame(candidates: Sequence[Frame]) -> Optional[Frame]:
    """Pick ``Portrait`` among orientation siblings, else the first."""
    if not candidates:
        return None
    for f in candidates:
        if f.orientation == PORTRAIT:
            return f
    return candidates[0]


def resolve_selection(
    frames: Sequence[Frame],
    category: str,
    model: str,
    version: Optional[str] = None,
    variant: Optional[str] = None,
    orientation: Optional[str] = None,
) -> Optional[Frame]:
    """Resolve a (possibly partial) drill-down path to one frame."""
    if version is None:
        versions = versions_for(frames, category, model)
        version = versions[0] if versions else None
    if variant is None:
        variants = variants_for(frames, category, model, version)
        variant = variants[0] if variants else None

    candidates = [
        f for f in _in_version(frames, category, model, version)
        if f.variant == variant
    ]
    if orientation is not None:
        candidates = [f for f in candidates if f.orientation == orientation]
    return preferred_frame(candidates)
