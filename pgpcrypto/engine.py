"""
OpenPGP engine adapter.

The workflow talks to the engine through the small OpenPGPEngine protocol.
GnuPGEngine implements it on top of python-gnupg; tests substitute a fake.
"""

import logging
from email.utils import parseaddr
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Protocol, Sequence

import gnupg

from .keys import KeyRecord
from .models import EncryptionOutcome, VerificationOutcome
from .status import (
    parse_decryption_recipients,
    parse_invalid_recipients,
    parse_signatures,
)

logger = logging.getLogger(__name__)

# Called at most once per operation. GnuPGEngine resolves it eagerly, before gpg
# starts, because python-gnupg takes the passphrase up front; an operation whose
# key has no passphrase still needs a working secret backend.
PassphraseCallback = Callable[[], str]


class OpenPGPEngine(Protocol):
    """The operations the workflow needs from an OpenPGP implementation."""

    def list_keys(self, patterns: Sequence[str], secret_only: bool = False) -> list[KeyRecord]:
        ...

    def encrypt_and_sign(
        self,
        recipients: Sequence[KeyRecord],
        signer: KeyRecord,
        source: Path,
        destination: Path,
        passphrase_callback: PassphraseCallback,
        always_trust: bool = True,
    ) -> EncryptionOutcome:
        ...

    def decrypt_and_verify(
        self,
        source: Path,
        destination: Path,
        passphrase_callback: PassphraseCallback,
    ) -> VerificationOutcome:
        ...

    def engine_info(self) -> dict[str, Any]:
        ...


def key_record_from_listing(key: dict[str, Any]) -> KeyRecord:
    """
    Convert one python-gnupg key listing entry into a KeyRecord.

    The email comes from the first user id. Fingerprints are ordered primary key
    first, then subkeys in keyring order.
    """
    uids = key.get("uids") or []
    email = None
    if uids:
        _, address = parseaddr(uids[0])
        email = address or None

    fingerprints = [key.get("fingerprint")]
    for subkey in key.get("subkeys") or []:
        # [keyid, capabilities, fingerprint, keygrip]
        if len(subkey) > 2 and subkey[2]:
            fingerprints.append(subkey[2])

    return KeyRecord(
        email=email,
        fingerprints=tuple(fpr for fpr in fingerprints if fpr),
        handle=key.get("fingerprint"),
    )


class GnuPGEngine:
    """OpenPGPEngine backed by the gpg binary through python-gnupg.

    One instance owns one GPG session; do not share an instance between
    concurrently running jobs.
    """

    def __init__(
        self,
        gnupghome: Optional[Path] = None,
        gpgbinary: str = "gpg",
        armor: bool = True,
    ):
        """
        Initialize the engine.

        Args:
            gnupghome: Keyring directory (None uses gpg's default)
            gpgbinary: Name or path of the gpg executable
            armor: Produce ASCII armored output when encrypting
        """
        self.armor = armor
        self._gpg = gnupg.GPG(
            gnupghome=str(gnupghome) if gnupghome else None,
            gpgbinary=gpgbinary,
        )
        self._gpg.encoding = "utf-8"

    @property
    def gpg(self) -> gnupg.GPG:
        return self._gpg

    def engine_info(self) -> dict[str, Any]:
        """Describe the gpg installation in use."""
        version = getattr(self._gpg, "version", None)
        return {
            "binary": self._gpg.gpgbinary,
            "version": ".".join(str(part) for part in version) if version else "unknown",
            "home": self._gpg.gnupghome or "default",
            "protocol": "OpenPGP",
        }

    def list_keys(self, patterns: Iterable[str], secret_only: bool = False) -> list[KeyRecord]:
        """List keys matching any of the patterns, with signature metadata."""
        listing = self._gpg.list_keys(secret=secret_only, keys=list(patterns), sigs=True)
        return [key_record_from_listing(key) for key in listing]

    def encrypt_and_sign(
        self,
        recipients: Sequence[KeyRecord],
        signer: KeyRecord,
        source: Path,
        destination: Path,
        passphrase_callback: PassphraseCallback,
        always_trust: bool = True,
    ) -> EncryptionOutcome:
        passphrase = passphrase_callback()
        with open(source, "rb") as stream:
            # python-gnupg switches gpg to loopback pinentry when a passphrase is given
            result = self._gpg.encrypt_file(
                stream,
                [key.handle for key in recipients],
                sign=signer.handle,
                always_trust=always_trust,
                passphrase=passphrase,
                armor=self.armor,
                output=str(destination),
            )

        return EncryptionOutcome(
            success=bool(result.ok),
            invalid_recipients=parse_invalid_recipients(result.stderr),
            status=result.status or "",
        )

    def decrypt_and_verify(
        self,
        source: Path,
        destination: Path,
        passphrase_callback: PassphraseCallback,
    ) -> VerificationOutcome:
        passphrase = passphrase_callback()
        with open(source, "rb") as stream:
            result = self._gpg.decrypt_file(
                stream,
                passphrase=passphrase,
                output=str(destination),
            )

        return VerificationOutcome(
            success=bool(result.ok),
            recipients=parse_decryption_recipients(result.stderr),
            signatures=parse_signatures(result.stderr),
            status=result.status or "",
        )
