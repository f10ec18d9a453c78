"""
Configuration management for the raster effects tools.
Handles loading, saving, and managing user preferences and effect defaults.
"""

import copy
import json
import logging
import os
from typing import Any, Optional, Dict
from pathlib import Path

__all__ = [
    'ConfigManager',
]

logger = logging.getLogger(__name__)


class ConfigManager:
    """Manages application configuration and per-effect defaults."""

    DEFAULT_CONFIG = {
        # Default effect parameters, keyed by EffectMode value
        "defaults": {
            "convolution": {
                "kernel": "blur"
            },
            "box_blur": {
                "size": 5
            },
            "difference_of_gaussians": {
                "size_a": 1,
                "size_b": 3,
                "threshold": 0.03
            },
            "kuwahara": {
                "radius": 3
            },
            "ordered_dither": {
                "color_mode": "color"
            },
            "mandelbrot": {
                "width": 700,
                "height": 400,
                "max_iterations": 100
            }
        },

        # Last used paths
        "paths": {
            "last_input_dir": None,
            "last_output_dir": None
        },

        # Recent files (keep last 10)
        "recent_files": []
    }

    def __init__(self, config_file: str = "config.json"):
        """
        Initialize config manager.

        Args:
            config_file: Path to config file
        """
        self.config_file = config_file
        self.config = self._load_config()

    def _load_config(self) -> Dict:
        """Load config from file, or create default if not exists."""
        defaults = copy.deepcopy(self.DEFAULT_CONFIG)
        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    loaded = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Error loading config, using defaults: {e}")
                return defaults
            # Merge with defaults to handle new settings
            return self._merge_configs(defaults, loaded)
        else:
            # Create default config
            self.config = defaults
            self.save()
            return defaults

    def _merge_configs(self, default: Dict, loaded: Dict) -> Dict:
        """
        Recursively merge loaded config with defaults.
        Ensures all default keys exist even if not in loaded config.
        """
        for key, value in default.items():
            if key in loaded:
                if isinstance(value, dict) and isinstance(loaded[key], dict):
                    default[key] = self._merge_configs(value, loaded[key])
                else:
                    default[key] = loaded[key]
        return default

    def save(self):
        """Save current config to file."""
        try:
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(self.config, f, indent=4)
        except OSError as e:
            logger.warning(f"Error saving config: {e}")

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Get config value by nested keys.

        Args:
            *keys: Nested keys (e.g., "defaults", "kuwahara", "radius")
            default: Default value if key not found

        Returns:
            Config value or default

        Example:
            config.get("defaults", "kuwahara", "radius")  # Returns 3
        """
        value = self.config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, *keys: str, value: Any):
        """
        Set config value by nested keys.

        Args:
            *keys: Nested keys (e.g., "defaults", "box_blur", "size")
            value: Value to set

        Example:
            config.set("defaults", "box_blur", "size", value=9)
        """
        if len(keys) == 0:
            return

        # Navigate to the parent dict
        current = self.config
        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        # Set the final value
        current[keys[-1]] = value

    def effect_defaults(self, effect: str) -> Dict[str, Any]:
        """
        Stored defaults for one effect; a copy, so callers may update it.

        Args:
            effect: EffectMode value such as "kuwahara"
        """
        return dict(self.get("defaults", effect, default={}))

    def update_last_path(self, path_type: str, filepath: str):
        """
        Update last used directory for a path type.

        Args:
            path_type: "input" or "output"
            filepath: File path to extract directory from
        """
        if filepath:
            directory = str(Path(filepath).parent)
            self.set("paths", f"last_{path_type}_dir", value=directory)

    def get_last_path(self, path_type: str) -> Optional[str]:
        """
        Get last used directory for a path type.

        Args:
            path_type: "input" or "output"

        Returns:
            Directory path or None
        """
        return self.get("paths", f"last_{path_type}_dir")

    def add_recent_file(self, filepath: str, max_recent: int = 10):
        """
        Add file to recent files list.

        Args:
            filepath: File path to add
            max_recent: Maximum number of recent files to keep
        """
        recent = self.get("recent_files", default=[])

        # Remove if already exists
        if filepath in recent:
            recent.remove(filepath)

        # Add to front
        recent.insert(0, filepath)

        # Trim to max
        recent = recent[:max_recent]

        self.set("recent_files", value=recent)

    def get_recent_files(self, max_count: int = 10) -> list:
        """
        Get list of recent files that still exist.

        Args:
            max_count: Maximum number to return

        Returns:
            List of file paths
        """
        recent = self.get("recent_files", default=[])
        # Filter out files that no longer exist
        existing = [f for f in recent if os.path.exists(f)]
        return existing[:max_count]

    def clear_recent_files(self):
        """Clear all recent files."""
        self.set("recent_files", value=[])
