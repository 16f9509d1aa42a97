"""YAML-based configuration loading and saving.

Provides functions to serialize ``CalibratorConfig`` (or any of its
sub-trees, such as a ``ProjectConfig`` document) to YAML and
deserialize it back, layering file values over defaults.
"""

from __future__ import annotations

import dataclasses
import typing
from pathlib import Path
from typing import Any

import yaml

from projmap_calibrator.config.paths import resolve_config_path
from projmap_calibrator.config.schema import CalibratorConfig


def dataclass_to_dict(obj: Any) -> Any:
    """Recursively convert a dataclass instance to a plain dict."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {
            f.name: dataclass_to_dict(getattr(obj, f.name))
            for f in dataclasses.fields(obj)
        }
    if isinstance(obj, (list, tuple)):
        return [dataclass_to_dict(v) for v in obj]
    return obj


def _list_item_type(obj: Any, key: str) -> type | None:
    """Return the dataclass element type of a ``list[...]`` field."""
    hints = typing.get_type_hints(type(obj))
    hint = hints.get(key)
    if typing.get_origin(hint) is not list:
        return None
    args = typing.get_args(hint)
    if args and dataclasses.is_dataclass(args[0]):
        return args[0]
    return None


def apply_dict_to_dataclass(obj: Any, data: dict[str, Any]) -> None:
    """Recursively apply a dict of values onto a dataclass instance.

    Only keys that match existing field names are applied. Nested
    dataclass fields are updated recursively rather than replaced;
    lists of dataclasses are rebuilt element by element on top of
    fresh defaults.

    Args:
        obj: The dataclass instance to update.
        data: A dict whose keys correspond to field names.
    """
    field_names = {f.name for f in dataclasses.fields(obj)}
    for key, value in data.items():
        if key not in field_names:
            continue
        current = getattr(obj, key)
        if (
            dataclasses.is_dataclass(current)
            and isinstance(value, dict)
        ):
            apply_dict_to_dataclass(current, value)
            continue

        item_type = (
            _list_item_type(obj, key) if isinstance(value, list) else None
        )
        if item_type is not None:
            items = []
            for entry in value:
                item = item_type()
                if isinstance(entry, dict):
                    apply_dict_to_dataclass(item, entry)
                items.append(item)
            value = items
        setattr(obj, key, value)


def load_config(
    path: str | Path | None = None,
) -> CalibratorConfig:
    """Load a configuration from a YAML file.

    If *path* is ``None``, returns the default configuration. If a path
    (or the name of a file in ``configs/``) is given, it is loaded and
    merged on top of the defaults.

    Args:
        path: Optional path or config name.

    Returns:
        A fully populated ``CalibratorConfig`` instance.

    Raises:
        FileNotFoundError: If *path* does not exist.
    """
    config = CalibratorConfig()
    if path is None:
        return config

    path = resolve_config_path(path)

    with open(path, "r") as f:
        data = yaml.safe_load(f)

    if data and isinstance(data, dict):
        apply_dict_to_dataclass(config, data)

    return config


def save_config(
    config: Any,
    path: str | Path,
) -> None:
    """Save a configuration dataclass tree to a YAML file.

    Args:
        config: The configuration to serialize.
        path: Output file path.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = dataclass_to_dict(config)
    with open(path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)
