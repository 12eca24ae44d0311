"""
Configuration management for the halftoning tools.
Handles loading, saving, and managing user preferences.
"""

import copy
import json
import logging
import os
from typing import Any, Optional, Dict
from pathlib import Path

logger = logging.getLogger(__name__)

__all__ = [
    'ConfigManager',
]


class ConfigManager:
    """Manages user preferences: default job settings, paths, recent files."""

    DEFAULT_CONFIG = {
        # Default algorithm used when a job file has no "algorithm" section
        "defaults": {
            "algorithm": {
                "method": {
                    "type": "threshold",
                    "threshold_filter": {"type": "matrix_threshold", "matrix": "simple_threshold"},
                    "error_filter": {"type": "matrix_error", "matrix": "floyd_steinberg"},
                    "scanning_order": {"type": "serpentine"}
                }
            },
            "output_format": "png",
            "log_file": None
        },

        # Last used paths
        "paths": {
            "last_input_dir": None,
            "last_output_dir": None,
            "last_job_dir": None
        },

        # Recent files (keep last 10)
        "recent_files": []
    }

    def __init__(self, config_file: str = "halftone_config.json", create_if_missing: bool = True):
        """
        Initialize config manager.

        Args:
            config_file: Path to config file
            create_if_missing: Write the default config when the file does not exist
        """
        self.config_file = config_file
        self.config = self._load_config(create_if_missing)

    def _load_config(self, create_if_missing: bool) -> Dict:
        """Load config from file, or fall back to defaults."""
        defaults = copy.deepcopy(self.DEFAULT_CONFIG)
        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    loaded = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Error loading config {self.config_file}: {e}")
                return defaults
            # Merge with defaults to handle new settings
            return self._merge_configs(defaults, loaded)
        if create_if_missing:
            self._write(defaults)
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

    def _write(self, config: Dict):
        try:
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(config, f, indent=4)
        except OSError as e:
            logger.error(f"Error saving config {self.config_file}: {e}")

    def save(self):
        """Save current config to file."""
        self._write(self.config)

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Get config value by nested keys.

        Args:
            *keys: Nested keys (e.g., "defaults", "output_format")
            default: Default value if key not found

        Returns:
            Config value or default
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

        Example:
            config.set("defaults", "output_format", value="tiff")
        """
        if len(keys) == 0:
            return

        current = self.config
        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

    def get_default_algorithm(self) -> Dict:
        """Copy of the default "algorithm" job section."""
        return copy.deepcopy(self.get("defaults", "algorithm", default={}))

    def update_last_path(self, path_type: str, filepath: str):
        """
        Update last used directory for a path type.

        Args:
            path_type: "input", "output", or "job"
            filepath: File path to extract directory from
        """
        if filepath:
            directory = str(Path(filepath).parent)
            self.set("paths", f"last_{path_type}_dir", value=directory)

    def get_last_path(self, path_type: str) -> Optional[str]:
        return self.get("paths", f"last_{path_type}_dir")

    def add_recent_file(self, filepath: str, max_recent: int = 10):
        """
        Add file to the front of the recent files list.

        Args:
            filepath: File path to add
            max_recent: Maximum number of recent files to keep
        """
        recent = list(self.get("recent_files", default=[]))
        if filepath in recent:
            recent.remove(filepath)
        recent.insert(0, filepath)
        self.set("recent_files", value=recent[:max_recent])

    def get_recent_files(self, max_count: int = 10) -> list:
        """Recent files that still exist."""
        recent = self.get("recent_files", default=[])
        existing = [f for f in recent if os.path.exists(f)]
        return existing[:max_count]

    def clear_recent_files(self):
        self.set("recent_files", value=[])
