"""
Key directory for the configured sender and recipient.

Binds the two configured email identities to concrete keys from the keyring
and checks signature fingerprints against the configured sender key.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .errors import InvalidKeyError, KeyNotConfiguredError
from .models import Identity

logger = logging.getLogger(__name__)


def normalize_fingerprint(fingerprint: str) -> str:
    """Uppercase hex without spaces, the form GnuPG prints in status lines."""
    return "".join(fingerprint.split()).upper()


@dataclass(frozen=True)
class KeyRecord:
    """A key as returned by the engine's keyring listing."""
    email: Optional[str]
    fingerprints: tuple[str, ...]
    handle: Any = None

    @property
    def primary_fingerprint(self) -> Optional[str]:
        return self.fingerprints[0] if self.fingerprints else None


@dataclass(frozen=True)
class KeyDirectory:
    """The sender and recipient keys chosen for one run."""
    sender: Identity
    recipient: Identity
    sender_key: Optional[KeyRecord] = None
    recipient_key: Optional[KeyRecord] = None

    @classmethod
    def initialize(
        cls,
        sender: Identity,
        recipient: Identity,
        candidate_keys: Iterable[KeyRecord],
    ) -> "KeyDirectory":
        """
        Pick one key per identity from the engine's candidates.

        The first candidate whose email matches an identity wins. A role that
        never matches is left empty; using it later raises KeyNotConfiguredError.

        Args:
            sender: Configured sender identity
            recipient: Configured recipient identity
            candidate_keys: Keys returned by the engine for both identities

        Returns:
            The populated directory

        Raises:
            InvalidKeyError: If a candidate carries no identity email
        """
        sender_key: Optional[KeyRecord] = None
        recipient_key: Optional[KeyRecord] = None

        for key in candidate_keys:
            if not key.email:
                raise InvalidKeyError(
                    f"Key {key.primary_fingerprint or '<no fingerprint>'} has no user id email"
                )
            if recipient_key is None and recipient.matches(key.email):
                recipient_key = key
            if sender_key is None and sender.matches(key.email):
                sender_key = key

        if sender_key is None:
            logger.warning(f"No key found for sender [{sender}]")
        if recipient_key is None:
            logger.warning(f"No key found for recipient [{recipient}]")

        return cls(
            sender=sender,
            recipient=recipient,
            sender_key=sender_key,
            recipient_key=recipient_key,
        )

    def require_sender(self) -> KeyRecord:
        """Get the sender key or fail if none was matched."""
        if self.sender_key is None:
            raise KeyNotConfiguredError(f"No key configured for sender [{self.sender}]")
        return self.sender_key

    def require_recipient(self) -> KeyRecord:
        """Get the recipient key or fail if none was matched."""
        if self.recipient_key is None:
            raise KeyNotConfiguredError(f"No key configured for recipient [{self.recipient}]")
        return self.recipient_key

    @staticmethod
    def verify_thumbprint(key: KeyRecord, candidate_fingerprint: str) -> bool:
        """
        Check that the key-in-use matches the configured key-for-use.

        Only the primary fingerprint and the first subkey fingerprint are
        compared; deeper subkeys are ignored.

        Args:
            key: The configured key
            candidate_fingerprint: Fingerprint reported for the key actually used

        Returns:
            True if the candidate is the primary or first subkey fingerprint
        """
        if key is None:
            raise ValueError("Supplied key-for-use is None")
        if candidate_fingerprint is None:
            raise ValueError("Supplied fingerprint of key-in-use is None")

        thumbprints = [normalize_fingerprint(fpr) for fpr in key.fingerprints[:2] if fpr]
        is_matching = normalize_fingerprint(candidate_fingerprint) in thumbprints

        logger.info(f"Key-in-use matches key-for-use?...[{is_matching}]")
        return is_matching
