"""Model and home directory path utilities.

Model files are looked up under ``~/.facepath/models`` by default.
Override with ``FACEPATH_MODELS_DIR`` or ``FACEPATH_HOME`` environment variables.
"""

import os
from pathlib import Path
from typing import Optional, Union


def get_home_dir() -> Path:
    """Return the facepath home directory, creating it if needed.

    Resolution order:
        1. ``FACEPATH_HOME`` environment variable.
        2. ``~/.facepath`` (default).
    """
    home = os.environ.get("FACEPATH_HOME")
    if home:
        home_dir = Path(home)
    else:
        home_dir = Path.home() / ".facepath"
    home_dir.mkdir(parents=True, exist_ok=True)
    return home_dir


def get_models_dir() -> Path:
    """Return the models directory, creating it if it doesn't exist.

    Resolution order:
        1. ``FACEPATH_MODELS_DIR`` environment variable (absolute or relative to CWD).
        2. ``{home}/models`` where *home* is from :func:`get_home_dir`.

    Returns:
        Absolute path to the models directory.
    """
    env_val = os.environ.get("FACEPATH_MODELS_DIR")
    if env_val:
        models_dir = Path(env_val)
        if not models_dir.is_absolute():
            models_dir = Path.cwd() / models_dir
    else:
        models_dir = get_home_dir() / "models"
    models_dir.mkdir(parents=True, exist_ok=True)
    return models_dir


def resolve_model_path(
    name: Union[str, Path],
    models_dir: Optional[Union[str, Path]] = None,
) -> Path:
    """Resolve a model file name against the models directory.

    Absolute paths and paths that exist relative to the CWD are returned
    unchanged. The file is not required to exist.
    """
    path = Path(name)
    if path.is_absolute() or path.exists():
        return path
    base = Path(models_dir) if models_dir is not None else get_models_dir()
    return base / path


__all__ = ["get_home_dir", "get_models_dir", "resolve_model_path"]
