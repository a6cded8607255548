"""
Configuration loading and logging setup for the speed pipeline.
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

DEFAULT_CONFIG: Dict[str, Any] = {
    'tracker': {
        'iou_threshold': 0.3,
        'max_age': 5,
        'min_hits': 3,
        'reid_window_ms': 1200.0,
        'reid_max_cost': 0.7,
        'reid_iou_weight': 0.6,
        'reid_appearance_weight': 0.4,
        'assignment': 'greedy',
        'histogram_bins': 8,
        'color_order': 'rgb'
    },
    'velocity': {
        'smoothing_alpha': 0.25,
        'uncertainty_floor_mph': 2.0
    },
    'pipeline': {
        'vehicle_classes': ['car', 'truck', 'bus'],
        'fps_window': 30
    },
    'logging': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    }
}

REQUIRED_SECTIONS = ('tracker', 'velocity')


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively overlay override onto a copy of base"""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load configuration from a JSON or YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary merged over DEFAULT_CONFIG
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    with open(config_file, 'r') as f:
        if config_file.suffix.lower() == '.json':
            config = json.load(f)
        elif config_file.suffix.lower() in ['.yml', '.yaml']:
            config = yaml.safe_load(f) or {}
        else:
            raise ValueError(f"Unsupported config format: {config_file.suffix}")

    for section in REQUIRED_SECTIONS:
        if section not in config:
            raise ValueError(f"Missing required config section: {section}")

    return _merge(DEFAULT_CONFIG, config)


def resolve_config(config: Optional[Union[str, Path, Dict[str, Any]]]) -> Dict[str, Any]:
    """Accept a file path, a partial dictionary or None"""
    if config is None:
        return copy.deepcopy(DEFAULT_CONFIG)
    if isinstance(config, (str, Path)):
        return load_config(config)
    return _merge(DEFAULT_CONFIG, config)


def setup_logging(config: Dict[str, Any]):
    """Setup logging configuration from the 'logging' section"""
    log_config = config.get('logging', {})

    level = getattr(logging, str(log_config.get('level', 'INFO')).upper(), logging.INFO)
    format_str = log_config.get('format', DEFAULT_CONFIG['logging']['format'])

    logging.basicConfig(level=level, format=format_str)
