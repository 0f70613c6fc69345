"""Runtime configuration.

Defaults live here as module constants; an optional JSON file and the
``DEVICEFRAMER_ASSETS`` environment variable override them, and CLI
flags override both.
"""

import json
import os
from dataclasses import dataclass
from typing import Optional

from .compositor import PREVIEW_MAX_WIDTH
from .engine import DEFAULT_LOG_LINES
from .errors import ConfigError
from .matcher import TOLERANCE

ASSETS_ENV = "DEVICEFRAMER_ASSETS"
DEFAULT_ASSET_ROOT = "frames"
DEFAULT_CATALOG_NAME = "Frames.json"
DEFAULT_ENCODER = "libx264"


@dataclass
class FramerConfig:
    asset_root: str = DEFAULT_ASSET_ROOT
    catalog_name: str = DEFAULT_CATALOG_NAME
    tolerance: float = TOLERANCE
    preview_max_width: int = PREVIEW_MAX_WIDTH
    encoder_id: str = DEFAULT_ENCODER
    log_lines: int = DEFAULT_LOG_LINES

    @property
    def catalog_path(self) -> str:
        return os.path.join(self.asset_root, self.catalog_name)

    def to_dict(self) -> dict:
        return {
            "assetRoot": self.asset_root,
            "catalogName": self.catalog_name,
            "tolerance": self.tolerance,
            "previewMaxWidth": self.preview_max_width,
            "encoderId": self.encoder_id,
            "logLines": self.log_lines,
        }

    @staticmethod
    def from_dict(d: dict) -> "FramerConfig":
        defaults = FramerConfig()
        cfg = FramerConfig(
            asset_root=d.get("assetRoot", defaults.asset_root),
            catalog_name=d.get("catalogName", defaults.catalog_name),
            tolerance=d.get("tolerance", defaults.tolerance),
            preview_max_width=d.get("previewMaxWidth", defaults.preview_max_width),
            encoder_id=d.get("encoderId", defaults.encoder_id),
            log_lines=d.get("logLines", defaults.log_lines),
        )
        cfg.validate()
        return cfg

    def validate(self) -> None:
        for name in ("asset_root", "catalog_name", "encoder_id"):
            if not isinstance(getattr(self, name), str):
                raise ConfigError(f"Invalid {name}: {getattr(self, name)!r}")
        if not _is_number(self.tolerance) or self.tolerance < 0:
            raise ConfigError(f"Invalid tolerance: {self.tolerance!r}")
        for name in ("preview_max_width", "log_lines"):
            value = getattr(self, name)
            if not _is_number(value) or not isinstance(value, int) or value <= 0:
                raise ConfigError(f"Invalid {name}: {value!r}")


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def load_config(path: Optional[str] = None) -> FramerConfig:
    """Load configuration from an optional JSON file plus the environment."""
    data: dict = {}
    if path:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.loads(f.read())
        except OSError as exc:
            raise ConfigError(f"Cannot read config {path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Config {path} must be a JSON object")

    cfg = FramerConfig.from_dict(data)
    env_root = os.environ.get(ASSETS_ENV)
    if env_root:
        cfg.asset_root = env_root
    return cfg
