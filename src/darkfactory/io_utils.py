"""Wrappers for text file I/O with consistent encoding (UTF-8)."""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Any

PathLike = Path | str


def read_text(path: PathLike, errors: str = "strict", **kwargs: Any) -> str:
    """Read path as text with UTF-8 encoding. Forwards extra kwargs to Path.read_text."""
    p = path if isinstance(path, Path) else Path(path)
    return p.read_text(encoding="utf-8", errors=errors, **kwargs)


def write_text(path: PathLike, text: str, **kwargs: Any) -> None:
    """Write text to path with UTF-8 encoding. Forwards extra kwargs to Path.write_text."""
    p = path if isinstance(path, Path) else Path(path)
    p.write_text(text, encoding="utf-8", **kwargs)


def temp_path_for(path: PathLike) -> Path:
    """Sibling temp path ``<path>.tmp.<pid>-<ns>`` used for atomic replaces."""
    p = path if isinstance(path, Path) else Path(path)
    return p.with_name(f"{p.name}.tmp.{os.getpid()}-{time.time_ns()}")


def atomic_write_text(path: PathLike, text: str) -> None:
    """Write *text* to a temp sibling, fsync it, then ``os.replace`` it over *path*.

    Readers see either the previous file or the complete new one.
    """
    target = path if isinstance(path, Path) else Path(path)
    tmp = temp_path_for(target)
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        # os.replace overwrites destination if it exists (required on Windows)
        os.replace(tmp, target)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
