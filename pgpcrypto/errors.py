"""
Error types for the OpenPGP batch exchange.

Two branches:
- FatalError: configuration and key problems that abort the whole run
- FileOperationError: problems that abort only the current file

Batch loops catch FileOperationError and keep going; everything else propagates.
Archive failures are not errors at all (see exchange.archive.ArchivalWarning).
"""

from pathlib import Path
from typing import Any


class PgpBatchError(Exception):
    """Base class for all batch exchange errors."""


class FatalError(PgpBatchError):
    """Error that invalidates the whole run."""


class ConfigurationError(FatalError):
    """A required setting is missing, blank or malformed."""


class InvalidKeyError(FatalError):
    """The engine returned a key without identity information."""


class NotInitializedError(FatalError):
    """An operation was invoked before the workflow was initialized."""


class KeyNotConfiguredError(NotInitializedError):
    """No key in the keyring matched the configured identity for a role."""


class FileOperationError(PgpBatchError):
    """Error confined to a single file operation."""


class SecretRetrievalError(FileOperationError):
    """A passphrase could not be fetched or unwrapped from its backend."""


class EngineOperationError(FileOperationError):
    """The OpenPGP engine reported a failure (bad passphrase, corrupt input, ...)."""


class EncryptionRecipientError(FileOperationError):
    """The engine rejected one or more recipient keys."""

    def __init__(self, message: str, invalid_recipients: list[Any] | None = None):
        super().__init__(message)
        self.invalid_recipients = list(invalid_recipients or [])


class SenderAuthenticationError(FileOperationError):
    """No valid, fully trusted signature from the configured sender key.

    By the time this is raised the decrypted destination file has been deleted.
    """

    def __init__(self, message: str, destination: Path | None = None):
        super().__init__(message)
        self.destination = destination
