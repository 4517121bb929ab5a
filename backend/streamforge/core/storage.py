"""Local filesystem storage for uploads and HLS packages.

Uploaded sources live under ``UPLOADS_DIR/<unique name>`` and transcoded
packages under ``OUTPUT_VIDEOS_DIR/<unique name>/``. Unique names are
generated per upload, so no two jobs ever write the same path.

Removal is best effort: failures are logged and counted, never raised, so a
cleanup problem cannot fail a deletion or a finished transcode.
"""

import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO, Optional

from streamforge.core.logging import log_warning
from streamforge.core.metrics import CLEANUP_FAILURES_TOTAL

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024


class MediaStorage:
    """Paths and file operations for uploads and transcoded output."""

    def __init__(self, uploads_dir: str, outputs_dir: str):
        self.uploads_dir = Path(uploads_dir)
        self.outputs_dir = Path(outputs_dir)

    @classmethod
    def from_settings(cls, settings) -> "MediaStorage":
        return cls(settings.UPLOADS_DIR, settings.OUTPUT_VIDEOS_DIR)

    @staticmethod
    def generate_unique_name(original_filename: str) -> str:
        """Generate a storage name keeping the original extension."""
        ext = os.path.splitext(original_filename)[1].lower()
        return f"{uuid.uuid4()}{ext}"

    def upload_path(self, unique_name: str) -> str:
        return str(self.uploads_dir / unique_name)

    def output_dir(self, unique_name: str) -> str:
        return str(self.outputs_dir / unique_name)

    def save_upload(self, fileobj: BinaryIO, unique_name: str) -> str:
        """Write an uploaded file object into the uploads directory.

        Returns:
            Path of the stored source file
        """
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        dest_path = self.uploads_dir / unique_name
        with open(dest_path, "wb") as dest:
            shutil.copyfileobj(fileobj, dest, COPY_CHUNK_SIZE)
        return str(dest_path)

    @staticmethod
    def ensure_dir(path: str) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def remove_file(self, path: Optional[str], reason: str = "") -> bool:
        """Delete a file if it exists.

        Returns:
            True if a file was deleted
        """
        if not path:
            return False
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            CLEANUP_FAILURES_TOTAL.labels(kind="file").inc()
            log_warning(
                logger,
                "Failed to remove file",
                path=path,
                reason=reason,
                error=str(e),
            )
            return False

    def remove_tree(self, path: Optional[str], reason: str = "") -> bool:
        """Recursively delete a directory if it exists.

        Returns:
            True if a directory was deleted
        """
        if not path:
            return False
        try:
            shutil.rmtree(path)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            CLEANUP_FAILURES_TOTAL.labels(kind="directory").inc()
            log_warning(
                logger,
                "Failed to remove directory",
                path=path,
                reason=reason,
                error=str(e),
            )
            return False
