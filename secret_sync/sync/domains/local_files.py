"""Local secret file access."""
import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Optional

from .errors import FileReadError, FileWriteError

logger = logging.getLogger(__name__)

NEW_FILE_MODE = 0o600


def read_file(path: Path) -> bytes:
    """
    Read a secret file that must exist.

    Raises:
        FileReadError: If the file is missing, a directory or unreadable
    """
    if not path.exists():
        raise FileReadError(f"file does not exist: {path}")
    if path.is_dir():
        raise FileReadError(f"expected a file but found a directory: {path}")

    try:
        return path.read_bytes()
    except OSError as e:
        raise FileReadError(f"failed to read {path}: {e}")


def read_file_if_exists(path: Path) -> Optional[bytes]:
    """Read a secret file, returning None when it does not exist yet."""
    if not path.exists():
        return None
    return read_file(path)


def write_file_atomic(path: Path, data: bytes) -> None:
    """
    Replace ``path`` with ``data`` in one step.

    The bytes go to a temporary file in the same directory which is then
    renamed over the target, so readers see either the old or the new content.
    An existing file keeps its permission bits; new files are created 0600.

    Raises:
        FileWriteError: If the parent cannot be created or the write fails
    """
    parent = path.parent
    if not parent.exists():
        logger.debug(f"Creating parent directory {parent}")
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileWriteError(f"failed to create directory {parent}: {e}")

    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        mode = NEW_FILE_MODE
    except OSError as e:
        raise FileWriteError(f"failed to inspect {path}: {e}")

    try:
        fd, tmp_name = tempfile.mkstemp(dir=str(parent), prefix=f".{path.name}.", suffix=".tmp")
    except OSError as e:
        raise FileWriteError(f"failed to create temporary file in {parent}: {e}")

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise FileWriteError(f"failed to write {path}: {e}")
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    logger.debug(f"Wrote {len(data)} bytes to {path}")
