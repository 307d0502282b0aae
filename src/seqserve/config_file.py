"""Config file persistence.

The config file is a small JSON document holding the values a user saved with
``--set`` (database directory, BLAST+ location, threads, host, port).
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

from .context import RunContext
from .errors import ConfigFileError
from .options import ConfigIntent

CONFIG_FILENAME = ".seqserve.conf"

# Keys written by ``write_config_file``; everything else in the intent is per-run.
PERSISTED_KEYS = ("bin_dir", "database_dir", "num_threads", "host", "port", "require_path")

logger = logging.getLogger("seqserve")


def default_config_path(context: RunContext) -> Path:
    return Path(context.home) / CONFIG_FILENAME


def config_path_for(intent: ConfigIntent, context: RunContext) -> Path:
    if intent.config_file:
        return Path(context.expand(intent.config_file))
    return default_config_path(context)


def load_config_file(path: Path, required: bool = False) -> Dict[str, Any]:
    """Load settings from ``path``.

    A missing file is only an error when the user named it explicitly.
    """
    if not path.exists():
        if required:
            raise ConfigFileError(f"Config file not found: {path}")
        logger.debug("No config file at %s; using defaults.", path)
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            data: Any = json.load(fh)
    except json.JSONDecodeError as e:
        raise ConfigFileError(f"Config file {path} is not valid JSON: {e}") from e
    except OSError as e:
        raise ConfigFileError(f"Could not read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigFileError(f"Config file {path} must contain a JSON object.")
    unknown = sorted(set(data) - set(PERSISTED_KEYS))
    if unknown:
        logger.warning("Ignoring unknown keys in %s: %s", path, ", ".join(unknown))
    logger.debug("Loaded config file %s", path)
    return {k: data[k] for k in PERSISTED_KEYS if data.get(k) is not None}


def write_config_file(intent: ConfigIntent, context: RunContext) -> Path:
    """Save persistable values of ``intent``; values already in the file are kept."""
    p = config_path_for(intent, context)
    current = load_config_file(p) if p.exists() else {}
    values = intent.as_dict()
    payload = dict(current)
    payload.update({k: values[k] for k in PERSISTED_KEYS if k in values})
    for k in ("bin_dir", "database_dir", "require_path"):
        if k in payload:
            payload[k] = context.expand(str(payload[k]))

    # Write next to the target and rename, so an interrupted write leaves the old file intact.
    tmp = p.with_name(p.name + ".tmp")
    try:
        with tmp.open("w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, sort_keys=True)
            fh.write("\n")
        os.replace(tmp, p)
    except OSError as e:
        raise ConfigFileError(f"Could not write config file {p}: {e}") from e
    finally:
        if tmp.exists():
            tmp.unlink()
    return p
