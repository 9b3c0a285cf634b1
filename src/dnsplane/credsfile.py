"""Load the provider credentials file.

The file maps a provider name to a dictionary of settings. String values of
the form ``$NAME`` are replaced by the environment variable ``NAME``. The
optional ``TYPE`` entry names the provider type and must agree with the type
declared in the desired-state document.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import yaml

from .config import _parse_bool
from .errors import ConfigError

LOG = logging.getLogger(__name__)

TYPE_KEY = "TYPE"


def _substitute(provider: str, key: str, value: Any) -> Any:
    if not isinstance(value, str) or not value.startswith("$") or len(value) < 2:
        return value
    env_name = value[1:]
    if env_name not in os.environ:
        raise ConfigError(f"credential {provider}.{key} refers to unset environment variable {env_name}")
    return os.environ[env_name]


def load_credentials(path: Path, required: bool = False) -> dict[str, dict[str, Any]]:
    """Return provider name -> settings, with environment references resolved."""
    if not path.exists():
        if required:
            raise ConfigError(f"credentials file {path} does not exist")
        LOG.debug("No credentials file at %s", path)
        return {}
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"failed to parse credentials file {path}: {exc}") from exc
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError(f"credentials file {path} must hold a mapping of provider names")

    result: dict[str, dict[str, Any]] = {}
    for provider, entry in data.items():
        if entry is None:
            entry = {}
        if not isinstance(entry, dict):
            raise ConfigError(f"credentials for {provider} must be a mapping")
        result[str(provider)] = {str(key): _substitute(provider, key, value) for key, value in entry.items()}
    LOG.debug("Loaded credentials for %d providers from %s", len(result), path)
    return result


def provider_credentials(
    creds: dict[str, dict[str, Any]], name: str, declared_type: str = ""
) -> tuple[str, dict[str, Any]]:
    """Return ``(provider type, settings)`` for provider ``name``.

    The ``TYPE`` key is removed from the returned settings.
    """
    entry = dict(creds.get(name, {}))
    creds_type = str(entry.pop(TYPE_KEY, "") or "")
    if declared_type and creds_type and declared_type != creds_type:
        raise ConfigError(
            f"provider {name} is declared as {declared_type} but its credentials say TYPE={creds_type}"
        )
    ptype = declared_type or creds_type
    if not ptype:
        raise ConfigError(f"provider {name} has no type in the config or the credentials file")
    return ptype, entry


def coerce_fields(settings: dict[str, Any], creds_fields: dict[str, str]) -> dict[str, Any]:
    """Return ``settings`` with fields declared ``bool`` turned into booleans."""
    result = dict(settings)
    for name, kind in creds_fields.items():
        if kind != "bool" or name not in result:
            continue
        value = result[name]
        if not isinstance(value, bool):
            result[name] = _parse_bool(str(value))
    return result
