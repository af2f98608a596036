"""
Filesystem helpers shared by the runner and the sandbox modes.
"""
import json
import os
import shutil
import uuid
from pathlib import Path
from typing import Any, Union

PathLike = Union[str, Path]


def clean_dir(directory: PathLike) -> None:
    """
    Remove everything inside a directory but keep the directory itself,
    since it may be a mount point.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Tried to clean a directory that doesn't exist: {directory}")

    for entry in directory.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def ensure_dir(directory: PathLike, clean: bool = False) -> Path:
    """
    Make sure a directory exists, optionally emptying it.

    Raises:
        NotADirectoryError: If the path exists but is a file
    """
    directory = Path(directory)
    if directory.exists() and not directory.is_dir():
        raise NotADirectoryError(f"Tried to use file as directory: {directory}")

    if directory.is_dir():
        if clean:
            clean_dir(directory)
    else:
        directory.mkdir(parents=True, exist_ok=True)

    return directory


def write_text_atomic(path: PathLike, content: str) -> None:
    """Write via a temp file in the same directory and rename over the target"""
    path = Path(path)
    temp_path = path.parent / f".temp_{uuid.uuid4().hex[:8]}_{path.name}"
    try:
        with open(temp_path, 'w', encoding='utf-8') as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        # Atomic rename (POSIX guarantees atomicity)
        os.replace(temp_path, path)
    finally:
        if temp_path.exists():
            temp_path.unlink()


def write_json_atomic(path: PathLike, data: Any, indent: int = 2) -> None:
    write_text_atomic(path, json.dumps(data, indent=indent))
