"""Client directory discovery and atomic file replacement."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

TRIPSYNC_DIR = ".tripsync"
TRIPSYNC_ROOT_ENV = "TRIPSYNC_ROOT"


class TripsyncRootError(Exception):
    """Raised when TRIPSYNC_ROOT env var is set but invalid."""


def atomic_write(path: Path, content: str | bytes) -> None:
    """Replace *path* with *content* so readers never see a partial file.

    The data goes to a sibling temp file which is fsynced and then renamed
    over the target.

    Raises:
        FileNotFoundError: If the parent directory does not exist.
    """
    if not path.parent.is_dir():
        raise FileNotFoundError(f"Parent directory does not exist: {path.parent}")

    data = content.encode("utf-8") if isinstance(content, str) else content
    with tempfile.NamedTemporaryFile(
        "wb", dir=path.parent, prefix=f".{path.name}.", delete=False
    ) as tmp:
        tmp_path = Path(tmp.name)
        try:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        except BaseException:
            tmp.close()
            tmp_path.unlink(missing_ok=True)
            raise

    try:
        tmp_path.replace(path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def find_root(start: Path | None = None) -> Path | None:
    """Return the directory holding ``.tripsync/``, or ``None``.

    TRIPSYNC_ROOT, when set, is authoritative.  Otherwise the search walks
    up from *start* (default: cwd).

    Raises:
        TripsyncRootError: If TRIPSYNC_ROOT is set but invalid.
    """
    env_root = os.environ.get(TRIPSYNC_ROOT_ENV)
    if env_root is not None:
        return _check_env_root(env_root)

    here = (start or Path.cwd()).resolve()
    for candidate in (here, *here.parents):
        if (candidate / TRIPSYNC_DIR).is_dir():
            return candidate
    return None


def _check_env_root(value: str) -> Path:
    if not value:
        raise TripsyncRootError(f"{TRIPSYNC_ROOT_ENV} is set but empty")
    root = Path(value)
    if not root.is_dir():
        raise TripsyncRootError(f"{TRIPSYNC_ROOT_ENV} path does not exist: {value}")
    if not (root / TRIPSYNC_DIR).is_dir():
        raise TripsyncRootError(f"{TRIPSYNC_ROOT_ENV} has no {TRIPSYNC_DIR}/ inside: {value}")
    return root
