"""Tests for framer.compositor — masking, layering and scaling."""

import numpy as np
import pytest

from conftest import bezel_artwork, make_frame, solid
from framer.assets import AssetStore, decode_raster, encode_png
from framer.compositor import (
    alpha_over,
    apply_mask,
    compose,
    compose_layers,
    cut_region,
    fit_scale,
    paste,
    render_export,
    render_preview,
)
from framer.errors import AssetLoadError, CanvasContextError

RED = (0, 0, 255, 255)
BEZEL = (20, 30, 40, 255)


# ── Mask ────────────────────────────────────────────────────────────


class TestCutRegion:
    def test_only_exact_black_cuts(self) -> None:
        mask = np.array([[[0, 0, 0, 255], [1, 0, 0, 255], [255, 255, 255, 255]]],
                        dtype=np.uint8)
        assert cut_region(mask).tolist() == [[True, False, False]]

    def test_transparent_cuts(self) -> None:
        mask = np.array([[[255, 255, 255, 0]]], dtype=np.uint8)
        assert cut_region(mask).tolist() == [[True]]


class TestApplyMask:
    def test_binary_cut(self) -> None:
        shot = solid(3, 1, (5, 6, 7, 200))
        mask = np.array([[[0, 0, 0, 255], [10, 10, 10, 255], [255, 255, 255, 255]]],
                        dtype=np.uint8)
        out = apply_mask(shot, mask)
        assert out[:, :, 3].tolist() == [[0, 200, 200]]
        # colour channels untouched
        assert np.array_equal(out[:, :, :3], shot[:, :, :3])

    def test_does_not_mutate_input(self) -> None:
        shot = solid(2, 2, RED)
        apply_mask(shot, solid(2, 2, (0, 0, 0, 255)))
        assert np.all(shot[:, :, 3] == 255)

    def test_mask_resampled_to_screenshot(self) -> None:
        # 2x2 mask, left column black, upscaled to 4x4: only column 0 stays black
        mask = solid(2, 2, (255, 255, 255, 255))
        mask[:, 0] = (0, 0, 0, 255)
        out = apply_mask(solid(4, 4, RED), mask)
        assert np.all(out[:, 0, 3] == 0)
        assert np.all(out[:, 1:, 3] == 255)


# ── Layer helpers ──────────────────────────────────────────────────


class TestAlphaOver:
    def test_opaque_top_wins(self) -> None:
        out = alpha_over(solid(1, 1, BEZEL), solid(1, 1, RED))
        assert tuple(out[0, 0]) == BEZEL

    def test_transparent_top_shows_bottom(self) -> None:
        out = alpha_over(solid(1, 1, (0, 0, 0, 0)), solid(1, 1, RED))
        assert tuple(out[0, 0]) == RED

    def test_both_transparent(self) -> None:
        out = alpha_over(solid(1, 1, (9, 9, 9, 0)), solid(1, 1, (9, 9, 9, 0)))
        assert out[0, 0, 3] == 0

    def test_half_alpha(self) -> None:
        out = alpha_over(solid(1, 1, (255, 255, 255, 128)), solid(1, 1, (0, 0, 0, 255)))
        assert out[0, 0, 3] == 255
        assert 126 <= out[0, 0, 0] <= 130


class TestPaste:
    def test_clips_to_canvas(self) -> None:
        canvas = np.zeros((4, 4, 4), dtype=np.uint8)
        paste(canvas, solid(3, 3, RED), 2, -1)
        assert np.all(canvas[0:2, 2:4, 3] == 255)
        assert np.all(canvas[2:, :, 3] == 0)
        assert np.all(canvas[:, :2, 3] == 0)

    def test_fully_outside(self) -> None:
        canvas = np.zeros((2, 2, 4), dtype=np.uint8)
        paste(canvas, solid(2, 2, RED), 5, 5)
        assert not canvas.any()


class TestFitScale:
    def test_never_upscales(self) -> None:
        assert fit_scale(400, 1000) == 1.0

    def test_available_width_bound(self) -> None:
        assert fit_scale(1600, 400) == 0.25

    def test_max_width_bound(self) -> None:
        assert fit_scale(1600, 5000, max_width=800) == 0.5


# ── Compose ─────────────────────────────────────────────────────────


class TestCompose:
    def test_output_is_artwork_size(self, screenshot, phone_frame, assets) -> None:
        assert compose(screenshot, phone_frame, assets).shape == (60, 40, 4)

    def test_layers(self, screenshot, phone_frame, assets) -> None:
        out = compose(screenshot, phone_frame, assets)
        # bezel
        assert tuple(out[0, 0]) == BEZEL
        # screenshot at (10, 15)
        assert tuple(out[15 + 10, 10 + 10]) == RED
        # black mask corner is cut
        assert out[15, 10, 3] == 0
        assert out[15 + 4, 10 + 4, 3] == 0
        assert tuple(out[15 + 5, 10 + 5]) == RED
        # transparent screen area outside the screenshot
        assert out[10, 10, 3] == 0

    def test_without_mask(self, screenshot, plain_frame, assets) -> None:
        out = compose(screenshot, plain_frame, assets)
        assert tuple(out[15, 10]) == RED

    def test_frame_occludes_screenshot(self) -> None:
        art = bezel_artwork(40, 60, 5, BEZEL)
        out = compose_layers(solid(20, 30, RED), art, None, 0, 0)
        assert tuple(out[0, 0]) == BEZEL
        assert tuple(out[4, 4]) == BEZEL
        assert tuple(out[5, 5]) == RED

    def test_pure_function(self, screenshot, phone_frame, assets) -> None:
        before = screenshot.copy()
        a = compose(screenshot, phone_frame, assets)
        b = compose(screenshot, phone_frame, assets)
        assert a is not b
        assert np.array_equal(a, b)
        assert np.array_equal(screenshot, before)

    def test_scale_consistency(self, screenshot, phone_frame, assets) -> None:
        full = compose(screenshot, phone_frame, assets, scale=1.0)
        half = compose(screenshot, phone_frame, assets, scale=0.5)
        assert half.shape == (30, 20, 4)
        # placement offset halves: (10, 15) -> (5, 7)
        assert full[15, 10, 3] == 0 and half[7, 5, 3] == 0
        # the mask cut shrinks with the screenshot
        assert tuple(half[7 + 5, 5 + 5]) == RED
        assert tuple(full[15 + 10, 10 + 10]) == RED

    def test_missing_artwork(self, screenshot, assets) -> None:
        with pytest.raises(AssetLoadError):
            compose(screenshot, make_frame("absent"), assets)

    def test_empty_canvas(self, screenshot) -> None:
        with pytest.raises(CanvasContextError):
            compose_layers(screenshot, solid(4, 4, BEZEL), None, 0, 0, scale=0.1)

    def test_full_black_mask_end_to_end(self, tmp_path) -> None:
        root = tmp_path / "frames"
        root.mkdir()
        art = bezel_artwork(1200, 2400, 100, BEZEL)
        # an opaque notch overlapping the screenshot region
        art[300:340, 500:700] = BEZEL
        with open(root / "iphone15.png", "wb") as f:
            f.write(encode_png(art))
        with open(root / "iphone15_mask.png", "wb") as f:
            f.write(encode_png(solid(1000, 2000, (0, 0, 0, 255))))
        frame = make_frame("iphone15", x="100", y="200", width=1000, height=2000)

        out = compose(solid(1000, 2000, RED), frame, AssetStore(str(root)))
        region = out[200:2200, 100:1100]
        art_region = art[200:2200, 100:1100]
        opaque = art_region[:, :, 3] > 0
        assert np.all(region[~opaque, 3] == 0)
        assert np.array_equal(region[opaque], art_region[opaque])


class TestRender:
    def test_preview_scaled(self, screenshot, phone_frame, assets) -> None:
        out = render_preview(screenshot, phone_frame, assets, available_width=20)
        assert out.shape == (30, 20, 4)

    def test_preview_never_upscales(self, screenshot, phone_frame, assets) -> None:
        out = render_preview(screenshot, phone_frame, assets, available_width=2000)
        assert out.shape == (60, 40, 4)

    def test_export_png_matches_compose(self, screenshot, phone_frame, assets) -> None:
        data = render_export(screenshot, phone_frame, assets)
        assert data[:8] == b"\x89PNG\r\n\x1a\n"
        assert np.array_equal(decode_raster(data), compose(screenshot, phone_frame, assets))
