"""Temporary on-disk scratch space for rendering backends."""

from __future__ import annotations

import logging
import shutil
import tempfile
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "pdf-render-"


@contextmanager
def scratch_directory(root: str | Path | None = None) -> Iterator[Path]:
    """Create a per-conversion scratch directory and remove it on exit."""
    if root is not None:
        Path(root).mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=SCRATCH_PREFIX, dir=root))
    logger.debug("Created scratch directory %s", path)
    try:
        yield path
    finally:
        _remove_tree(path)


def _remove_tree(path: Path) -> None:
    # A timed-out render thread may still be unlinking its own files.
    for _ in range(3):
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return
        except OSError as e:
            logger.debug("Retrying removal of %s: %s", path, e)
            continue
        logger.debug("Removed scratch directory %s", path)
        return
    logger.warning("Could not fully remove scratch directory %s", path)


@contextmanager
def staged_document(document: bytes, workdir: Path, suffix: str = ".pdf") -> Iterator[Path]:
    """Write ``document`` to a uniquely named file in ``workdir`` for the duration of the block."""
    path = workdir / f"pdf-{uuid.uuid4().hex}{suffix}"
    try:
        path.write_bytes(document)
        logger.debug("Wrote temporary file %s (%d bytes)", path, len(document))
        yield path
    finally:
        path.unlink(missing_ok=True)
        logger.debug("Cleaned up temporary file %s", path)
