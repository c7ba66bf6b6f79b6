"""Merge configuration layers into a validated :class:`IconicConfig`."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Iterable, Mapping, Tuple

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import IconicConfig

ENV_PREFIX = "ICONIC__"


def resolve_with_precedence(
    *,
    defaults: IconicConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> IconicConfig:
    """Layer overrides on top of defaults; later layers win.

    Order is defaults, configuration file, environment, command line. Keys in any
    layer may be nested mappings or dotted paths such as ``analysis.batch_size``.

    Raises:
        ConfigError: If a layer is malformed or the merged values fail validation.
    """
    merged: dict[str, Any] = defaults.model_dump(mode="python")
    layers: Iterable[Tuple[str, Mapping[str, Any] | None]] = (
        ("file", file_overrides),
        ("environment", env_overrides),
        ("cli", cli_overrides),
    )
    for label, layer in layers:
        if not layer:
            continue
        merged = _merge(merged, _expand(layer, label))

    try:
        return IconicConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def flatten_for_env(config: IconicConfig) -> Dict[str, str]:
    """Render the config as ``ICONIC__SECTION__KEY`` environment assignments."""
    flat: Dict[str, str] = {}
    for path, value in _leaves(config.model_dump(mode="python"), ()):
        key = ENV_PREFIX + "__".join(part.upper() for part in path)
        if isinstance(value, (list, dict)):
            flat[key] = yaml.safe_dump(value, default_flow_style=True).strip()
        elif value is None:
            flat[key] = "null"
        else:
            flat[key] = str(value)
    return flat


def _leaves(node: Any, prefix: Tuple[str, ...]) -> Iterable[Tuple[Tuple[str, ...], Any]]:
    # Profiles are a free-form mapping; keep them as one value.
    if isinstance(node, dict) and prefix != ("categories", "profiles"):
        for key, child in node.items():
            yield from _leaves(child, prefix + (str(key),))
    else:
        yield prefix, node


def _expand(layer: Mapping[str, Any], label: str) -> dict[str, Any]:
    if not isinstance(layer, MappingABC):
        raise ConfigError(f"{label.capitalize()} overrides must be a mapping.")

    expanded: dict[str, Any] = {}
    for raw_key, value in layer.items():
        if not isinstance(raw_key, str):
            raise ConfigError(f"{label.capitalize()} override keys must be strings.")
        segments = [segment for segment in raw_key.split(".") if segment]
        if not segments:
            raise ConfigError(f"{label.capitalize()} override has an empty key.")
        if isinstance(value, MappingABC):
            value = _expand(value, label)

        node = expanded
        for segment in segments[:-1]:
            child = node.setdefault(segment, {})
            if not isinstance(child, dict):
                raise ConfigError(
                    f"{label.capitalize()} override for {raw_key} conflicts with an existing value."
                )
            node = child
        leaf = segments[-1]
        if isinstance(value, dict) and isinstance(node.get(leaf), dict):
            node[leaf] = _merge(node[leaf], value)
        else:
            node[leaf] = value
    return expanded


def _merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    result = {key: deepcopy(value) for key, value in base.items()}
    for key, value in overrides.items():
        current = result.get(key)
        if isinstance(value, MappingABC) and isinstance(current, MappingABC):
            result[key] = _merge(current, value)
        else:
            result[key] = deepcopy(value)
    return result


__all__ = ["ENV_PREFIX", "resolve_with_precedence", "flatten_for_env"]
