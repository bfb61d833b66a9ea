"""
Best-effort archival of processed source files.

A failed move is reported as an ArchivalWarning and logged; it never changes
the outcome of the encryption or decryption that preceded it.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class ArchivalWarning(Warning):
    """An archive move failed. Logged and returned, never raised."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


@dataclass
class ArchiveResult:
    """Result of an archive move."""
    moved: bool
    source: Path
    destination: Path
    warning: Optional[ArchivalWarning] = None


class ArchiveManager:
    """Moves processed files out of the source folder."""

    def move(self, source: Path, archive: Path) -> ArchiveResult:
        """
        Move a source file to its archive location.

        An existing archive file is never overwritten. On any failure (I/O error,
        invalid path, ...) the source is left where it was for manual handling
        and nothing is raised.

        Args:
            source: File that was processed
            archive: Target path for the file

        Returns:
            ArchiveResult; inspect .warning when .moved is False
        """
        try:
            source, archive = Path(source), Path(archive)
            if archive.exists():
                raise FileExistsError(f"Archive file [{archive}] already exists")
            shutil.move(str(source), str(archive))
        except Exception as e:
            warning = ArchivalWarning(
                f"Unable to archive source file [{source}] to [{archive}]: {e}. "
                "Skipping archival...Please perform archiving manually.",
                cause=e,
            )
            logger.warning(str(warning))
            return ArchiveResult(moved=False, source=source, destination=archive, warning=warning)

        logger.info(f"Moved [{source}] to [{archive}] for archiving purpose.")
        return ArchiveResult(moved=True, source=source, destination=archive)
