"""
Folder-level batch processing.

Walks the configured source folder and runs every file through the workflow:
1. SENDER mode: encrypt+sign into the destination folder
2. RECIPIENT mode: decrypt+verify into the destination folder
3. Archive processed sources (best effort)

Per-file failures are recorded and the batch moves on; configuration and key
errors abort the batch.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Mapping, Optional

from pgpcrypto.errors import ConfigurationError, FileOperationError

if TYPE_CHECKING:
    from pgpcrypto.workflow import CryptoWorkflow, WorkflowContext

logger = logging.getLogger(__name__)

MODE_SENDER = "SENDER"
MODE_RECIPIENT = "RECIPIENT"


@dataclass
class FileFailure:
    """A file that could not be processed."""
    source: Path
    error: str
    error_type: str


@dataclass
class BatchResult:
    """Result of processing a source folder."""
    success: bool
    mode: str = ""
    processed: list[Path] = field(default_factory=list)
    failures: list[FileFailure] = field(default_factory=list)
    processing_time_ms: int = 0


@dataclass
class ProgressUpdate:
    """Progress update during processing."""
    stage: str
    message: str
    progress: float  # 0.0 to 1.0
    current_file: Optional[str] = None


@dataclass(frozen=True)
class FolderSettings:
    """The folder-related part of the runtime settings."""
    mode: str
    source_dir: Path
    destination_dir: Path
    archive_dir: Optional[Path] = None
    destination_prefix: str = ""
    archive_prefix: str = ""

    @classmethod
    def from_settings(cls, settings: Mapping[str, str]) -> "FolderSettings":
        """
        Read and validate folder settings.

        Raises:
            ConfigurationError: On a missing folder, unknown mode or blank required path
        """
        mode = (settings.get("ModeOfOperation") or "").strip().upper()
        if mode not in (MODE_SENDER, MODE_RECIPIENT):
            raise ConfigurationError(
                f"ModeOfOperation must be {MODE_SENDER} or {MODE_RECIPIENT}, got [{mode}]"
            )

        folders = {}
        for key in ("SourceFolderPath", "DestinationFolderPath"):
            value = (settings.get(key) or "").strip()
            if not value:
                raise ConfigurationError(f"{key} not configured")
            path = Path(value)
            if not path.is_dir():
                raise ConfigurationError(f"Directory specified in {key} does not exist: {path}")
            folders[key] = path

        archive_value = (settings.get("ArchiveFolderPath") or "").strip()
        archive_dir = Path(archive_value) if archive_value else None

        return cls(
            mode=mode,
            source_dir=folders["SourceFolderPath"],
            destination_dir=folders["DestinationFolderPath"],
            archive_dir=archive_dir,
            destination_prefix=settings.get("DestinationFilePrefix") or "",
            archive_prefix=settings.get("ArchiveFilePrefix") or "",
        )


class FolderProcessor:
    """Processes every file in the source folder with one workflow context."""

    def __init__(
        self,
        workflow: "CryptoWorkflow",
        context: "WorkflowContext",
        progress_callback: Optional[Callable[[ProgressUpdate], None]] = None,
    ):
        """
        Initialize the folder processor.

        Args:
            workflow: Workflow bound to an engine session
            context: Context returned by workflow.init()
            progress_callback: Optional callback for progress updates
        """
        self.workflow = workflow
        self.context = context
        self.folders = FolderSettings.from_settings(context.settings)
        self.progress_callback = progress_callback

    def _report_progress(self, stage: str, message: str, progress: float, current_file: str = None):
        """Report progress to callback if set."""
        if self.progress_callback:
            self.progress_callback(ProgressUpdate(
                stage=stage,
                message=message,
                progress=progress,
                current_file=current_file
            ))

    def pending_files(self) -> list[Path]:
        """Regular files in the source folder, in name order."""
        return sorted(path for path in self.folders.source_dir.iterdir() if path.is_file())

    def process_file(self, source: Path) -> None:
        """Run one file through the workflow according to the mode."""
        destination = self.folders.destination_dir / f"{self.folders.destination_prefix}{source.name}"
        archive = None
        if self.folders.archive_dir is not None:
            archive = self.folders.archive_dir / f"{self.folders.archive_prefix}{source.name}"

        if self.folders.mode == MODE_SENDER:
            self.workflow.encrypt_and_sign_file(self.context, source, destination, archive)
        else:
            self.workflow.decrypt_and_verify_file(self.context, source, destination, archive)

    def run(self) -> BatchResult:
        """
        Process all pending files.

        Returns:
            BatchResult listing processed files and per-file failures
        """
        start_time = datetime.now()
        result = BatchResult(success=False, mode=self.folders.mode)

        files = self.pending_files()
        logger.info(f"Found {len(files)} file(s) in [{self.folders.source_dir}] ({self.folders.mode} mode)")
        self._report_progress("scanning", f"Found {len(files)} file(s)", 0.0)

        for i, source in enumerate(files):
            self._report_progress("processing", f"Processing {source.name}...", i / len(files), source.name)
            try:
                self.process_file(source)
                result.processed.append(source)
            except FileOperationError as e:
                logger.error(f"Processing [{source}] failed: {e}")
                result.failures.append(FileFailure(source=source, error=str(e), error_type=type(e).__name__))

        result.success = not result.failures
        self._report_progress("complete", "Processing complete", 1.0)

        end_time = datetime.now()
        result.processing_time_ms = int((end_time - start_time).total_seconds() * 1000)

        logger.info(
            f"Batch finished: {len(result.processed)} processed, {len(result.failures)} failed "
            f"in {result.processing_time_ms} ms"
        )
        return result
