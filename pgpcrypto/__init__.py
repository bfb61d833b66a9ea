"""
OpenPGP module for the batch exchange job.

Handles:
- Key discovery for the configured sender and recipient (KeyDirectory)
- Passphrase resolution (AWS Secrets Manager, Windows DPAPI, certificate data protection)
- Encrypt+sign and decrypt+verify with fail-closed sender authentication
"""

from .errors import (
    PgpBatchError,
    FatalError,
    ConfigurationError,
    InvalidKeyError,
    NotInitializedError,
    KeyNotConfiguredError,
    FileOperationError,
    SecretRetrievalError,
    EngineOperationError,
    EncryptionRecipientError,
    SenderAuthenticationError,
)
from .models import Identity, Role
from .keys import KeyDirectory, KeyRecord
from .passphrase import PassphraseBackendMode, resolve_passphrase
from .engine import GnuPGEngine
from .workflow import CryptoWorkflow, WorkflowContext

__all__ = [
    "PgpBatchError",
    "FatalError",
    "ConfigurationError",
    "InvalidKeyError",
    "NotInitializedError",
    "KeyNotConfiguredError",
    "FileOperationError",
    "SecretRetrievalError",
    "EngineOperationError",
    "EncryptionRecipientError",
    "SenderAuthenticationError",
    "Identity",
    "Role",
    "KeyDirectory",
    "KeyRecord",
    "PassphraseBackendMode",
    "resolve_passphrase",
    "GnuPGEngine",
    "CryptoWorkflow",
    "WorkflowContext",
]
