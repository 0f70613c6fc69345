"""Shared pytest fixtures for deviceframer tests."""

import copy
import json

import cv2
import numpy as np
import pytest

from framer.assets import AssetStore
from framer.catalog import parse_frames
from framer.models import Coordinates, Frame


# ── Descriptor tree ────────────────────────────────────────────────

_DESCRIPTOR = {
    "version": "2.1",
    "iPad": {
        "iPad Pro": {
            "2021": {
                "Space Gray": {
                    "Landscape": {"x": "120", "y": "120", "name": "ipadpro_sg_land",
                                  "screenshotWidth": 2732, "screenshotHeight": 2048},
                    "Portrait": {"x": "120", "y": "120", "name": "ipadpro_sg_port",
                                 "screenshotWidth": 2048, "screenshotHeight": 2732},
                },
            },
        },
    },
    "AppleDevice": {
        "iPhone": {
            "13": {
                "Midnight": {
                    "Portrait": {"x": "90", "y": "90", "name": "iphone13_mid_port",
                                 "screenshotWidth": 1170, "screenshotHeight": 2532},
                    "Landscape": {"x": "90", "y": "90", "name": "iphone13_mid_land",
                                  "screenshotWidth": 2532, "screenshotHeight": 1170},
                },
            },
            "12-13": {
                "Blue": {"x": "80", "y": "80", "name": "iphone12_blue",
                         "screenshotWidth": 1170, "screenshotHeight": 2532},
            },
            "8": {"x": "60", "y": "200", "name": "iphone8"},
        },
        "iPhone 15": {"x": "100", "y": "200", "name": "iphone15",
                      "screenshotWidth": 1179, "screenshotHeight": 2556},
    },
    "Watch": {
        "Ultra": {
            "2": {"x": "40", "y": "90", "name": "watch_ultra2",
                  "screenshotWidth": 410, "screenshotHeight": 502},
        },
    },
}


@pytest.fixture
def descriptor() -> dict:
    """Irregularly nested descriptor (leaves at model, version, variant
    and orientation depth)."""
    return copy.deepcopy(_DESCRIPTOR)


@pytest.fixture
def frames(descriptor: dict) -> list[Frame]:
    return parse_frames(descriptor)


@pytest.fixture
def descriptor_file(tmp_path, descriptor: dict) -> str:
    path = tmp_path / "Frames.json"
    path.write_text(json.dumps(descriptor), encoding="utf-8")
    return str(path)


# ── Rasters ────────────────────────────────────────────────────────

def solid(w: int, h: int, bgra: tuple) -> np.ndarray:
    """A ``h x w`` BGRA raster filled with one colour."""
    img = np.zeros((h, w, 4), dtype=np.uint8)
    img[:, :] = bgra
    return img


def bezel_artwork(w: int, h: int, border: int,
                  color: tuple = (20, 30, 40, 255)) -> np.ndarray:
    """Opaque border of *border* px around a transparent screen cutout."""
    img = solid(w, h, color)
    img[border:h - border, border:w - border] = 0
    return img


@pytest.fixture
def screenshot() -> np.ndarray:
    """20x30 opaque red screenshot (BGRA)."""
    return solid(20, 30, (0, 0, 255, 255))


# ── Assets ─────────────────────────────────────────────────────────

@pytest.fixture
def asset_dir(tmp_path) -> str:
    """Asset root with a masked ``phone`` frame and an unmasked ``plain`` one.

    ``phone``: 40x60 artwork, 5px bezel, mask black on its top-left 5x5.
    ``plain``: 40x60 artwork, 5px bezel, no mask.
    """
    root = tmp_path / "frames"
    root.mkdir()
    cv2.imwrite(str(root / "phone.png"), bezel_artwork(40, 60, 5))
    mask = solid(20, 30, (255, 255, 255, 255))
    mask[:5, :5] = (0, 0, 0, 255)
    cv2.imwrite(str(root / "phone_mask.png"), mask)
    cv2.imwrite(str(root / "plain.png"), bezel_artwork(40, 60, 5))
    return str(root)


@pytest.fixture
def assets(asset_dir: str) -> AssetStore:
    return AssetStore(asset_dir)


def make_frame(name: str, x: str = "10", y: str = "15",
               width: float | None = 20, height: float | None = 30) -> Frame:
    return Frame(
        id=f"Test-{name}",
        category="Test",
        model=name,
        coordinates=Coordinates(x=x, y=y, name=name,
                                screenshot_width=width, screenshot_height=height),
    )


@pytest.fixture
def phone_frame() -> Frame:
    return make_frame("phone")


@pytest.fixture
def plain_frame() -> Frame:
    return make_frame("plain")
