"""
Exchange module for the batch job.

Handles:
- Walking the source folder in SENDER or RECIPIENT mode
- Archiving processed source files
"""

from .archive import ArchiveManager, ArchiveResult, ArchivalWarning
from .processor import FolderProcessor, BatchResult

__all__ = ["ArchiveManager", "ArchiveResult", "ArchivalWarning", "FolderProcessor", "BatchResult"]
