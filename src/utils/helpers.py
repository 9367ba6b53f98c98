"""A collection of tools that are required to help other scripts."""

import copy
import logging
import os
import sys

import yaml

DEFAULT_CONFIG = {
    "data": {
        "path": "data/measurements.xlsx",
        "sheet_name": 0,
        "id_column": None,
        "measurement_columns": None,
        "exclude_columns": [],
        "group_column": "population",
        "longitude_column": "longitude",
        "latitude_column": "latitude",
    },
    "preprocessing": {
        "log_transform": False,
        "log_base": 10,
        "max_column_missing": 0.5,
        "min_columns": 2,
        "min_rows": 3,
    },
    "pca": {
        "use_correlation": True,
        "n_components": None,
        "hulls": True,
        "ellipses": False,
        "loadings_components": 3,
        "biplot_arrows": 8,
    },
    "dfa": {
        "priors": None,
        "min_group_size": 2,
    },
    "map": {
        "boundaries": "data/shapefiles/boundaries.shp",
        "range": "data/shapefiles/range.shp",
        "crs": None,
        "padding": 0.1,
        "title": None,
    },
    "output": {
        "dir": "output",
        "dpi": 300,
        "log_file": None,
    },
}

NOISY_LOGGERS = ["matplotlib", "PIL", "fiona", "pyogrio", "shapely"]


def _merge(base: dict, override: dict) -> dict:
    """Recursively merges ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str) -> dict:
    """Reads the YAML configuration and fills in the defaults.

    Args:
        config_path (str): Path to the YAML configuration file.

    Returns:
        dict: The configuration with every section present.

    Raises:
        FileNotFoundError: If the configuration file doesn't exist.
        ValueError: If the file doesn't contain a mapping.
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f)

    if config is None:
        config = {}
    if not isinstance(config, dict):
        raise ValueError(f"Configuration must be a mapping, got {type(config).__name__}")

    return _merge(DEFAULT_CONFIG, config)


def setup_logging(level: int = logging.INFO, log_file: str | None = None) -> None:
    """Configures the root logger for the walkthrough scripts.

    Args:
        level (int, optional): Logging level. Defaults to INFO.
        log_file (str, optional): Also append the log to this file.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode="a"))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def write_text(path: str, text: str) -> str:
    """Writes a text report, creating the parent directory if needed.

    Args:
        path (str): Destination file.
        text (str): Report contents.

    Returns:
        str: The path that was written.
    """
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
        if not text.endswith("\n"):
            f.write("\n")
    return path
