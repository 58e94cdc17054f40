"""
Archiver Adapter
Packages a job's output directory into a single ZIP file.

Entries are stored relative to the source directory (no enclosing
top-level folder). The archive is written to a temporary file first and
renamed into place, so a half-written archive is never visible under the
final name.
"""

import logging
import os
import zipfile
from pathlib import Path

from .errors import ArchiveError

logger = logging.getLogger(__name__)


class ZipArchiver:
    """DEFLATE (level 9) ZIP packager."""

    def __init__(self, compresslevel: int = 9):
        self.compresslevel = compresslevel

    def package(self, source_dir, archive_path) -> str:
        """
        Write every file under *source_dir* into *archive_path*.

        Args:
            source_dir: Directory tree to package.
            archive_path: Destination ``.zip`` file. Must not be inside *source_dir*.

        Returns:
            The archive path as a string.

        Raises:
            ArchiveError: source missing/unreadable or archive not writable.
        """
        source = Path(source_dir)
        target = Path(archive_path)
        if not source.is_dir():
            raise ArchiveError(f"Source directory not found: {source}")
        if source.resolve() in target.resolve().parents:
            raise ArchiveError("Archive path must be outside the source directory")

        partial = target.with_name(target.name + ".part")
        file_count = 0
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(
                partial, "w", zipfile.ZIP_DEFLATED, compresslevel=self.compresslevel
            ) as zipf:
                for root, dirs, files in os.walk(source, onerror=_raise):
                    dirs.sort()
                    for name in sorted(files):
                        file_path = os.path.join(root, name)
                        arcname = Path(os.path.relpath(file_path, source)).as_posix()
                        zipf.write(file_path, arcname)
                        file_count += 1
            os.replace(partial, target)
        except (OSError, zipfile.BadZipFile) as e:
            if partial.exists():
                partial.unlink()
            raise ArchiveError(f"Could not create archive {target}: {e}") from e

        logger.info(f"[ARCHIVE] {target} ({file_count} files, {target.stat().st_size} bytes)")
        return str(target)


def _raise(error: OSError) -> None:
    raise error
