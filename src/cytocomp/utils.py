"""Shared utility helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def load_config(path: str | Path) -> dict[str, Any]:
    """Load and validate a YAML configuration file (empty files give ``{}``)."""
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    try:
        with cfg_path.open("r", encoding="utf-8") as handle:
            config = yaml.safe_load(handle)
            config = config if config is not None else {}
            validate_config(config)
            return config
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config {path}: {e}")
    except (OSError, IOError) as e:
        raise RuntimeError(f"Cannot read config {path}: {e}")


def validate_config(config: Any) -> None:
    """Validate configuration structure.

    Recognised top-level keys are ``channels`` (ordered list of channel
    names) and ``fit`` (options for :class:`cytocomp.config.FitConfig`).
    """
    if not isinstance(config, dict):
        raise ValueError("Configuration must be a mapping")

    unknown = sorted(set(config) - {"channels", "fit"})
    if unknown:
        raise ValueError(f"Unknown configuration keys: {unknown}")

    channels = config.get("channels")
    if channels is not None and not isinstance(channels, list):
        raise ValueError("Configuration 'channels' must be a list")

    fit = config.get("fit")
    if fit is not None and not isinstance(fit, dict):
        raise ValueError("Configuration 'fit' must be a dictionary")


def ensure_dir(path: str | Path) -> Path:
    """Create a directory (and parents) if missing and return the ``Path``."""

    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory
