"""Zero-filled raw disk image shared by every backend."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from bootrig.errors import StorageError
from bootrig.models import DISK_SECTORS, SECTOR_SIZE


def ensure_disk_image(path: Path) -> bool:
    """Create the disk image at *path* unless it already exists.

    Returns ``True`` when the file was created. An existing file is never
    rewritten, whatever its contents. The image is written to a temporary
    file beside *path* and linked into place only once complete, so a failed
    write never leaves a short image behind.
    """
    if path.exists():
        return False
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, scratch = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    except OSError as exc:
        raise _storage_error(path, exc) from exc
    partial = Path(scratch)
    try:
        with os.fdopen(fd, "wb") as f:
            for _ in range(DISK_SECTORS):
                f.write(bytes(SECTOR_SIZE))
        os.link(partial, path)
    except FileExistsError:
        # Created between the existence check and the link.
        return False
    except OSError as exc:
        raise _storage_error(path, exc) from exc
    finally:
        partial.unlink(missing_ok=True)
    return True


def _storage_error(path: Path, exc: OSError) -> StorageError:
    return StorageError(
        "Could not create disk image.",
        context={"path": str(path), "reason": exc.strerror or str(exc)},
    )
