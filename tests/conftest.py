"""
Pytest fixtures for the batch exchange tests.

FakeEngine stands in for GnuPG: "encryption" reverses the bytes, and the
signatures reported on decryption are whatever the test configures.
"""

import json
from pathlib import Path

import pytest

from pgpcrypto.keys import KeyRecord
from pgpcrypto.models import (
    DecryptionRecipient,
    EncryptionOutcome,
    InvalidRecipient,
    SignatureRecord,
    SignatureSummary,
    Validity,
    VerificationOutcome,
)
from pgpcrypto.passphrase import AwsSecretsManagerResolver, PassphraseBackendMode
from pgpcrypto.workflow import CryptoWorkflow

ALICE_PRIMARY = "A" * 40
ALICE_SUBKEY = "A1" * 20
ALICE_THIRD = "A2" * 20
BOB_PRIMARY = "B" * 40
BOB_SUBKEY = "B1" * 20
MALLORY_PRIMARY = "C" * 40


def good_signature(fingerprint: str, validity: Validity = Validity.FULL) -> SignatureRecord:
    return SignatureRecord(
        fingerprint=fingerprint,
        hash_algorithm="SHA256",
        key_algorithm="RSA",
        summary=SignatureSummary.VALID | SignatureSummary.GREEN,
        validity=validity,
    )


def bad_signature(fingerprint: str) -> SignatureRecord:
    return SignatureRecord(fingerprint=fingerprint, summary=SignatureSummary.RED, validity=Validity.FULL)


class FakeEngine:
    """In-memory OpenPGPEngine."""

    def __init__(self, keys=None):
        self.keys = list(keys or [])
        self.signatures: list[SignatureRecord] = []
        self.invalid_recipients: list[InvalidRecipient] = []
        self.fail_encrypt = False
        self.fail_decrypt = False
        self.listed_patterns = []
        self.encrypt_calls = []
        self.passphrases = []
        # source file name -> exception raised after the destination was written
        self.errors: dict[str, Exception] = {}

    def _raise_for(self, source):
        error = self.errors.get(Path(source).name)
        if error is not None:
            raise error

    def list_keys(self, patterns, secret_only=False):
        self.listed_patterns.append(list(patterns))
        return list(self.keys)

    def engine_info(self):
        return {"binary": "fake", "version": "0", "home": "memory", "protocol": "OpenPGP"}

    def encrypt_and_sign(self, recipients, signer, source, destination, passphrase_callback, always_trust=True):
        self.passphrases.append(passphrase_callback())
        self.encrypt_calls.append((list(recipients), signer, always_trust))
        Path(destination).write_bytes(b"ENC:" + Path(source).read_bytes()[::-1])
        self._raise_for(source)
        if self.fail_encrypt:
            return EncryptionOutcome(success=False, status="bad passphrase")
        if self.invalid_recipients:
            return EncryptionOutcome(success=False, invalid_recipients=list(self.invalid_recipients))
        return EncryptionOutcome(success=True, status="encryption ok")

    def decrypt_and_verify(self, source, destination, passphrase_callback):
        self.passphrases.append(passphrase_callback())
        data = Path(source).read_bytes()
        if self.fail_decrypt or not data.startswith(b"ENC:"):
            Path(destination).write_bytes(b"")
            return VerificationOutcome(success=False, status="decryption failed")
        Path(destination).write_bytes(data[len(b"ENC:"):][::-1])
        self._raise_for(source)
        return VerificationOutcome(
            success=True,
            recipients=[DecryptionRecipient(key_id=BOB_SUBKEY[-16:], algorithm="RSA")],
            signatures=list(self.signatures),
            status="decryption ok",
        )


@pytest.fixture
def alice_key():
    return KeyRecord(email="alice@example.com", fingerprints=(ALICE_PRIMARY, ALICE_SUBKEY, ALICE_THIRD), handle=ALICE_PRIMARY)


@pytest.fixture
def bob_key():
    return KeyRecord(email="bob@example.com", fingerprints=(BOB_PRIMARY, BOB_SUBKEY), handle=BOB_PRIMARY)


@pytest.fixture
def engine(alice_key, bob_key):
    return FakeEngine([alice_key, bob_key])


@pytest.fixture
def secret_lookups():
    """Secret names requested from the fake AWS backend."""
    return []


@pytest.fixture
def aws_resolver(secret_lookups):
    def fetch(name):
        secret_lookups.append(name)
        return json.dumps({"SecretPassPhrase": f"pass-for-{name}"})
    return AwsSecretsManagerResolver(fetch_secret=fetch)


@pytest.fixture
def settings():
    return {
        "SenderEmailAddress": "alice@example.com",
        "RecipientEmailAddress": "bob@example.com",
        "PassphraseProtectionMode": "AWS_SECRETSMANAGER",
        "SenderAWSSecretsName": "alice-secret",
        "RecipientAWSSecretsName": "bob-secret",
    }


@pytest.fixture
def workflow(engine, aws_resolver):
    return CryptoWorkflow(engine, passphrase_resolvers={PassphraseBackendMode.AWS_SECRETS_MANAGER: aws_resolver})


@pytest.fixture
def context(workflow, settings):
    return workflow.init(settings)


@pytest.fixture
def plain_file(tmp_path):
    path = tmp_path / "report.csv"
    path.write_text("id,amount\n1,100\n2,250\n")
    return path
