# utils.py
"""
Shared helpers for the entry point: logging setup, JSON configuration
loading and the merge of command-line overrides into that configuration.
"""
import copy
import logging
import logging.handlers
import json
import os
from typing import Any, Dict, List, Optional

# --- Data Contracts ---
#
# setup_logging(config: Dict[str, Any]) -> None:
#   - Inputs: config["logging"] may hold "level", "format" and "log_file".
#   - Side Effects: replaces the root logger's handlers with a console
#     handler and, unless log_file is empty, a rotating file handler.
#     Creates the log directory when needed.
#
# load_config(path: str) -> Dict[str, Any]:
#   - Errors: FileNotFoundError and json.JSONDecodeError are logged, then raised.
#
# apply_overrides(config, overrides) -> Dict[str, Any]:
#   - Inputs: overrides maps "section.key" to a value; None values are skipped.
#   - Outputs: a deep copy of config with the overrides written in.

LOG_FILE_MAX_BYTES = 1024 * 1024
LOG_FILE_BACKUPS = 5


def _log_handlers(log_file: str) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
        ))
    return handlers


def setup_logging(config: Dict[str, Any]) -> None:
    """Configures the root logger from the "logging" config section."""
    settings = config.get('logging', {})
    level = settings.get('level', 'INFO').upper()
    formatter = logging.Formatter(settings.get('format', '%(asctime)s - %(levelname)s - %(message)s'))
    log_file = settings.get('log_file', 'logs/simulation.log')

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    for handler in _log_handlers(log_file):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    logging.info(f"Logging initialized at {level} ({log_file or 'console only'}).")


def load_config(path: str) -> Dict[str, Any]:
    """Loads a JSON configuration file."""
    logging.info(f"Loading configuration from {path}...")
    try:
        with open(path, 'r') as f:
            config = json.load(f)
    except FileNotFoundError:
        logging.error(f"Configuration file not found at {path}.")
        raise
    except json.JSONDecodeError as e:
        logging.error(f"Invalid JSON in {path}: {e}")
        raise
    logging.debug(f"Configuration sections: {sorted(config)}")
    return config


def apply_overrides(config: Dict[str, Any], overrides: Dict[str, Optional[Any]]) -> Dict[str, Any]:
    """Writes command-line overrides into a copy of the configuration."""
    merged = copy.deepcopy(config)
    for dotted_key, value in overrides.items():
        if value is None:
            continue
        section, key = dotted_key.split('.', 1)
        merged.setdefault(section, {})[key] = value
        logging.debug(f"Config override: {dotted_key} = {value}")
    return merged
