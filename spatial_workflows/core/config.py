"""
Configuration management for the spatial workflows package.
"""
import os
import copy
import yaml
from pathlib import Path
from typing import Dict, Any, Optional

from .exceptions import ConfigurationError


DEFAULT_CONFIG: Dict[str, Any] = {
    'directories': {
        'results_dir': 'results',
        'logs_dir': 'results/logs',
    },
    'weights': {
        'contiguity': 'queen',
        'k': 4,
        'distance_metric': 'great_circle',
        'transform': 'r',
        'island_policy': 'zero_fill',
    },
    'moran': {
        'assumption': 'randomization',
        'alternative': 'two-sided',
        'permutations': 999,
        'random_state': 42,
    },
    'selection': {
        'significance_level': 0.05,
        'lm_significance_level': 0.05,
        'impact_draws': 1000,
        'random_state': 42,
    },
    'dynamics': {
        'bandwidth': 'normal_reference',
        'gridsize': 200,
        'dbscan_eps': 0.1,
        'dbscan_min_samples': 5,
    },
    'reporting': {
        'digits': 4,
        'scientific': False,
    },
    'logging': {
        'log_level': 'INFO',
        'verbose_libraries': {
            'libpysal': 'WARNING',
        },
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """
    Dot-notation access to a nested configuration mapping.

    Values from the YAML file are layered over ``DEFAULT_CONFIG`` so that a
    partial file only needs the keys it changes.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        if not self.config_path or not os.path.exists(self.config_path):
            return copy.deepcopy(DEFAULT_CONFIG)

        with open(self.config_path, 'r') as f:
            try:
                loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {self.config_path}", original_error=e) from e

        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self.config_path}")
        return _merge(DEFAULT_CONFIG, loaded)

    def _section(self, keys, create: bool = False) -> Optional[Dict[str, Any]]:
        """Walk to the mapping holding the last key, or None when absent."""
        node = self.config
        for key in keys:
            child = node.get(key)
            if not isinstance(child, dict):
                if not create:
                    return None
                child = node[key] = {}
            node = child
        return node

    def get(self, key_path: str, default: Any = None) -> Any:
        """Value at a dotted key such as ``'weights.transform'``."""
        *parents, leaf = key_path.split('.')
        section = self._section(parents)
        if section is None or leaf not in section:
            return default
        return section[leaf]

    def set(self, key_path: str, value: Any) -> None:
        *parents, leaf = key_path.split('.')
        self._section(parents, create=True)[leaf] = value

    def get_path(self, key_path: str) -> Path:
        """Directory named at a dotted key, created if missing."""
        value = self.get(key_path)
        if not value:
            raise ConfigurationError(f"Path configuration '{key_path}' not found")
        path = Path(value)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def save(self, path: Optional[str] = None) -> None:
        target = path or self.config_path
        if not target:
            raise ConfigurationError("No path specified for saving configuration")
        Path(target).parent.mkdir(parents=True, exist_ok=True)
        with open(target, 'w') as f:
            yaml.safe_dump(self.config, f, default_flow_style=False, sort_keys=False)

    def settings(self) -> "WorkflowSettings":
        """Validated, typed view of the configuration."""
        from .schemas import WorkflowSettings
        return WorkflowSettings.from_config(self)


# Global configuration instance
config = Config()
