"""Locating configuration files.

Configs may be given as a path or as a bare name such as
``two_projectors``, which is looked up in the project's ``configs/``
directory.
"""

from __future__ import annotations

from pathlib import Path


def find_project_root(start: str | Path | None = None) -> Path:
    """Walk up from *start* (default: this file) to ``pyproject.toml``.

    Raises:
        FileNotFoundError: If no ``pyproject.toml`` is found.
    """
    current = Path(start or __file__).resolve()
    if current.is_file():
        current = current.parent
    for parent in [current, *current.parents]:
        if (parent / "pyproject.toml").exists():
            return parent
    raise FileNotFoundError(
        f"Could not find pyproject.toml above {current}."
    )


def find_config_dir() -> Path:
    """Return the ``configs/`` directory under the project root."""
    return find_project_root() / "configs"


def resolve_config_path(name_or_path: str | Path) -> Path:
    """Turn a config name or path into an existing file path.

    An existing path is returned unchanged.  Otherwise the name is
    looked up in ``configs/``, with ``.yaml`` appended if it has no
    suffix.

    Raises:
        FileNotFoundError: If nothing matches.
    """
    path = Path(name_or_path)
    if path.exists():
        return path
    candidate = path if path.suffix else path.with_suffix(".yaml")
    try:
        in_configs = find_config_dir() / candidate.name
    except FileNotFoundError:
        in_configs = None
    if in_configs is not None and in_configs.exists():
        return in_configs
    raise FileNotFoundError(f"Config file not found: {name_or_path}")
