# fs_utils.py

import shutil
from pathlib import Path
from typing import Union

from .errors import ConfigurationError


def ensure_folder(path: Union[str, Path]) -> Path:
    """Creates ``path`` (and parents) if needed and returns it. Idempotent."""
    folder = Path(path)
    if folder.exists() and not folder.is_dir():
        raise ConfigurationError(f"{folder} exists and is not a directory")
    folder.mkdir(parents=True, exist_ok=True)
    return folder


def clear_folder(path: Union[str, Path]) -> Path:
    """Empties a folder so stale artifacts from a previous build are never uploaded."""
    folder = ensure_folder(path)
    for entry in folder.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
    return folder
