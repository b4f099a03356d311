"""Local disk storage for uploaded documents"""

import logging
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from . import config
from .errors import ShareAccessError, ShareErrorKind

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def resolve_document_path(relative_path: Optional[str], base_dir: Optional[Path] = None) -> Path:
    """
    Map a stored file_path onto the uploads directory.

    Paths escaping the uploads directory are treated like missing files.
    """
    base = Path(base_dir or config.UPLOADS_DIR).resolve()
    if not relative_path:
        raise ShareAccessError(ShareErrorKind.NOT_FOUND, "Document file not found")

    candidate = (base / relative_path).resolve()
    if candidate != base and base not in candidate.parents:
        logger.warning(f"⚠️ Refusing document path outside uploads dir: {relative_path}")
        raise ShareAccessError(ShareErrorKind.NOT_FOUND, "Document file not found")

    if not candidate.is_file():
        logger.warning(f"⚠️ Document file missing on disk: {relative_path}")
        raise ShareAccessError(ShareErrorKind.NOT_FOUND, "Document file not found")

    return candidate


def open_document(path: Path) -> BinaryIO:
    """Open a document for streaming; failures surface before any header is sent"""
    try:
        return path.open("rb")
    except OSError as e:
        logger.error(f"❌ Failed to open {path}: {e}")
        raise ShareAccessError(ShareErrorKind.STORAGE, "Error downloading file") from e


def iter_file(handle: BinaryIO, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield the file in chunks, closing it when done or on error"""
    try:
        while True:
            chunk = handle.read(chunk_size)
            if not chunk:
                break
            yield chunk
    except OSError as e:
        # Headers are already on the wire; the connection is dropped
        logger.error(f"❌ Error streaming file {getattr(handle, 'name', '?')}: {e}")
        raise
    finally:
        handle.close()

