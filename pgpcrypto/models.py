"""
Value types shared by the engine adapter, the key directory and the workflow.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional

from .errors import ConfigurationError

# Flat, case-sensitive, read-only settings map
RuntimeSettings = Mapping[str, str]


def freeze_settings(settings: Mapping[str, str]) -> RuntimeSettings:
    """Return a read-only copy of a settings mapping (insertion order kept)."""
    return MappingProxyType(dict(settings))


class Role(enum.Enum):
    """Which party a passphrase or key belongs to."""
    SENDER = "Sender"
    RECIPIENT = "Recipient"


@dataclass(frozen=True)
class Identity:
    """An email address used to select a key from the keyring."""
    email: str

    def __post_init__(self):
        if self.email is None or not str(self.email).strip():
            raise ConfigurationError("Identity email address must not be blank")
        object.__setattr__(self, "email", str(self.email).strip())

    def matches(self, email: Optional[str]) -> bool:
        """Case-insensitive comparison against a key's uid email.

        Deliberately looser than an exact string match: "Alice@Example.com" in a
        uid selects the key configured as "alice@example.com".
        """
        if not email:
            return False
        return self.email.casefold() == email.strip().casefold()

    def __str__(self) -> str:
        return self.email


class Validity(enum.IntEnum):
    """Ownertrust-derived validity of the key that made a signature."""
    UNKNOWN = 0
    UNDEFINED = 1
    NEVER = 2
    MARGINAL = 3
    FULL = 4
    ULTIMATE = 5


class SignatureSummary(enum.Flag):
    """Condensed signature status, modelled on GPGME's summary bits."""
    NONE = 0
    VALID = enum.auto()
    GREEN = enum.auto()
    RED = enum.auto()
    KEY_REVOKED = enum.auto()
    KEY_EXPIRED = enum.auto()
    SIG_EXPIRED = enum.auto()
    KEY_MISSING = enum.auto()


@dataclass(frozen=True)
class InvalidRecipient:
    """A recipient key the engine refused to encrypt to."""
    fingerprint: str
    reason: str


@dataclass
class EncryptionOutcome:
    """Result of an encrypt+sign attempt."""
    success: bool
    invalid_recipients: list[InvalidRecipient] = field(default_factory=list)
    status: str = ""


@dataclass(frozen=True)
class DecryptionRecipient:
    """A key id the message was encrypted to."""
    key_id: str
    algorithm: str


@dataclass
class SignatureRecord:
    """One signature found while decrypting."""
    fingerprint: Optional[str]
    hash_algorithm: str = "unknown"
    key_algorithm: str = "unknown"
    timestamp: Optional[datetime] = None
    summary: SignatureSummary = SignatureSummary.NONE
    validity: Validity = Validity.UNKNOWN

    @property
    def is_trusted_valid(self) -> bool:
        """Cryptographically valid and made by a fully (or ultimately) trusted key."""
        return SignatureSummary.VALID in self.summary and self.validity >= Validity.FULL


@dataclass
class VerificationOutcome:
    """Result of a decrypt+verify attempt."""
    success: bool
    recipients: list[DecryptionRecipient] = field(default_factory=list)
    signatures: list[SignatureRecord] = field(default_factory=list)
    status: str = ""


@dataclass(frozen=True)
class AuthenticationDecision:
    """Whether decrypted output may be kept."""
    match_count: int
    outcome: Optional[VerificationOutcome] = None

    @property
    def authenticated(self) -> bool:
        return self.match_count >= 1
