"""
Parsing of GnuPG machine-readable status lines ("[GNUPG:] KEYWORD args...").

python-gnupg runs gpg with --status-fd pointing at the stream it captures as
result.stderr, so every status line of an operation ends up there.
"""

from datetime import datetime, timezone
from typing import Iterator, Optional

from .models import (
    DecryptionRecipient,
    InvalidRecipient,
    SignatureRecord,
    SignatureSummary,
    Validity,
)

STATUS_PREFIX = "[GNUPG:] "

PUBKEY_ALGORITHMS = {
    1: "RSA",
    2: "RSA-E",
    3: "RSA-S",
    16: "ELG-E",
    17: "DSA",
    18: "ECDH",
    19: "ECDSA",
    20: "ELG",
    22: "EdDSA",
}

HASH_ALGORITHMS = {
    1: "MD5",
    2: "SHA1",
    3: "RIPEMD160",
    8: "SHA256",
    9: "SHA384",
    10: "SHA512",
    11: "SHA224",
}

INVALID_RECIPIENT_REASONS = {
    0: "No specific reason given",
    1: "Not found",
    2: "Ambiguous specification",
    3: "Wrong key usage",
    4: "Key revoked",
    5: "Key expired",
    6: "No CRL known",
    7: "CRL too old",
    8: "Policy mismatch",
    9: "Not a secret key",
    10: "Key not trusted",
    11: "Missing certificate",
    12: "Missing issuer certificate",
    13: "Key disabled",
    14: "Syntax error in specification",
}

TRUST_LEVELS = {
    "TRUST_UNDEFINED": Validity.UNDEFINED,
    "TRUST_NEVER": Validity.NEVER,
    "TRUST_MARGINAL": Validity.MARGINAL,
    "TRUST_FULLY": Validity.FULL,
    "TRUST_ULTIMATE": Validity.ULTIMATE,
}

SIGNATURE_STATUSES = ("GOODSIG", "BADSIG", "EXPSIG", "EXPKEYSIG", "REVKEYSIG", "ERRSIG")

# ERRSIG return code for "public key not found"
ERRSIG_NO_PUBKEY = "9"


def iter_status_lines(text: Optional[str]) -> Iterator[tuple[str, list[str]]]:
    """Yield (keyword, arguments) for every status line in captured output."""
    for line in (text or "").splitlines():
        if not line.startswith(STATUS_PREFIX):
            continue
        parts = line[len(STATUS_PREFIX):].split()
        if parts:
            yield parts[0], parts[1:]


def algorithm_name(table: dict[int, str], code: str) -> str:
    try:
        return table.get(int(code), f"algorithm {code}")
    except ValueError:
        return "unknown"


def parse_timestamp(value: str) -> Optional[datetime]:
    """Status timestamps are either epoch seconds or ISO 8601 basic format."""
    if not value or value == "0":
        return None
    if value.isdigit():
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    try:
        return datetime.strptime(value, "%Y%m%dT%H%M%S").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def parse_invalid_recipients(text: Optional[str]) -> list[InvalidRecipient]:
    """Collect INV_RECP lines emitted during encryption."""
    invalid = []
    for keyword, args in iter_status_lines(text):
        if keyword != "INV_RECP":
            continue
        reason_code = args[0] if args else "0"
        requested = args[1] if len(args) > 1 else ""
        try:
            reason = INVALID_RECIPIENT_REASONS.get(int(reason_code), f"Reason code {reason_code}")
        except ValueError:
            reason = reason_code
        invalid.append(InvalidRecipient(fingerprint=requested, reason=reason))
    return invalid


def parse_decryption_recipients(text: Optional[str]) -> list[DecryptionRecipient]:
    """Collect ENC_TO lines: the keys a message was encrypted to."""
    recipients = []
    for keyword, args in iter_status_lines(text):
        if keyword == "ENC_TO" and args:
            algorithm = algorithm_name(PUBKEY_ALGORITHMS, args[1]) if len(args) > 1 else "unknown"
            recipients.append(DecryptionRecipient(key_id=args[0], algorithm=algorithm))
    return recipients


class _SignatureBuilder:
    """Accumulates the status lines that belong to one signature."""

    def __init__(self):
        self.status: Optional[str] = None
        self.key_id: Optional[str] = None
        self.fingerprint: Optional[str] = None
        self.hash_algorithm = "unknown"
        self.key_algorithm = "unknown"
        self.timestamp: Optional[datetime] = None
        self.validity = Validity.UNKNOWN
        self.error_code: Optional[str] = None

    def summary(self) -> SignatureSummary:
        # Same rules GPGME applies when it condenses a signature into summary bits
        summary = SignatureSummary.NONE
        if self.status == "GOODSIG":
            if self.validity >= Validity.FULL:
                summary |= SignatureSummary.VALID | SignatureSummary.GREEN
            elif self.validity == Validity.MARGINAL:
                summary |= SignatureSummary.GREEN
        elif self.status == "BADSIG":
            summary |= SignatureSummary.RED
        elif self.status == "EXPSIG":
            summary |= SignatureSummary.SIG_EXPIRED
        elif self.status == "EXPKEYSIG":
            summary |= SignatureSummary.KEY_EXPIRED
        elif self.status == "REVKEYSIG":
            summary |= SignatureSummary.KEY_REVOKED
        elif self.status == "ERRSIG" and self.error_code == ERRSIG_NO_PUBKEY:
            summary |= SignatureSummary.KEY_MISSING
        return summary

    def build(self) -> SignatureRecord:
        return SignatureRecord(
            fingerprint=self.fingerprint or self.key_id,
            hash_algorithm=self.hash_algorithm,
            key_algorithm=self.key_algorithm,
            timestamp=self.timestamp,
            summary=self.summary(),
            validity=self.validity,
        )


def parse_signatures(text: Optional[str]) -> list[SignatureRecord]:
    """Turn the NEWSIG/GOODSIG/VALIDSIG/TRUST_* stream into signature records."""
    signatures: list[SignatureRecord] = []
    current: Optional[_SignatureBuilder] = None

    def flush():
        if current is not None and current.status is not None:
            signatures.append(current.build())

    for keyword, args in iter_status_lines(text):
        if keyword == "NEWSIG":
            flush()
            current = _SignatureBuilder()

        elif keyword in SIGNATURE_STATUSES:
            if current is None or current.status is not None:
                flush()
                current = _SignatureBuilder()
            current.status = keyword
            current.key_id = args[0] if args else None
            if keyword == "ERRSIG":
                # ERRSIG <keyid> <pkalgo> <hashalgo> <class> <time> <rc> [<fpr>]
                if len(args) > 2:
                    current.key_algorithm = algorithm_name(PUBKEY_ALGORITHMS, args[1])
                    current.hash_algorithm = algorithm_name(HASH_ALGORITHMS, args[2])
                if len(args) > 4:
                    current.timestamp = parse_timestamp(args[4])
                if len(args) > 5:
                    current.error_code = args[5]
                if len(args) > 6 and args[6] != "-":
                    current.fingerprint = args[6]

        elif keyword == "VALIDSIG" and current is not None:
            # VALIDSIG <fpr> <date> <timestamp> <expires> <version> <reserved>
            #          <pkalgo> <hashalgo> <class> [<primary-fpr>]
            current.fingerprint = args[0] if args else current.fingerprint
            if len(args) > 2:
                current.timestamp = parse_timestamp(args[2])
            if len(args) > 7:
                current.key_algorithm = algorithm_name(PUBKEY_ALGORITHMS, args[6])
                current.hash_algorithm = algorithm_name(HASH_ALGORITHMS, args[7])

        elif keyword in TRUST_LEVELS and current is not None:
            current.validity = TRUST_LEVELS[keyword]

    flush()
    return signatures
