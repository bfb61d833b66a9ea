"""Tests for the python-gnupg adapter (gpg itself is mocked)."""

from unittest.mock import MagicMock

import pytest

from pgpcrypto import engine as engine_module
from pgpcrypto.engine import GnuPGEngine, key_record_from_listing
from pgpcrypto.models import SignatureSummary

from conftest import ALICE_PRIMARY, ALICE_SUBKEY, BOB_PRIMARY


def listing_entry(uid, fingerprint, subkeys=()):
    return {
        "uids": [uid] if uid else [],
        "fingerprint": fingerprint,
        "subkeys": [[fpr[-16:], "e", fpr, "grip"] for fpr in subkeys],
    }


@pytest.fixture
def mock_gpg(monkeypatch):
    gpg = MagicMock()
    gpg.gpgbinary = "gpg"
    gpg.gnupghome = "/keys"
    gpg.version = (2, 4, 3)
    monkeypatch.setattr(engine_module.gnupg, "GPG", MagicMock(return_value=gpg))
    return gpg


class TestKeyRecordFromListing:

    def test_email_and_fingerprint_order(self):
        record = key_record_from_listing(
            listing_entry("Alice Example <alice@example.com>", ALICE_PRIMARY, [ALICE_SUBKEY])
        )

        assert record.email == "alice@example.com"
        assert record.fingerprints == (ALICE_PRIMARY, ALICE_SUBKEY)
        assert record.handle == ALICE_PRIMARY

    def test_bare_address_uid(self):
        assert key_record_from_listing(listing_entry("bob@example.com", BOB_PRIMARY)).email == "bob@example.com"

    def test_no_uid(self):
        assert key_record_from_listing(listing_entry(None, BOB_PRIMARY)).email is None


class TestGnuPGEngine:

    def test_list_keys(self, mock_gpg):
        mock_gpg.list_keys.return_value = [listing_entry("alice@example.com", ALICE_PRIMARY)]

        keys = GnuPGEngine().list_keys(["alice@example.com", "bob@example.com"])

        mock_gpg.list_keys.assert_called_once_with(secret=False, keys=["alice@example.com", "bob@example.com"], sigs=True)
        assert keys[0].primary_fingerprint == ALICE_PRIMARY

    def test_engine_info(self, mock_gpg):
        info = GnuPGEngine().engine_info()

        assert info["version"] == "2.4.3"
        assert info["home"] == "/keys"

    def test_encrypt_passes_handles_and_passphrase(self, mock_gpg, tmp_path):
        source = tmp_path / "in.txt"
        source.write_text("payload")
        mock_gpg.encrypt_file.return_value = MagicMock(ok=True, status="encryption ok", stderr="")
        sender = key_record_from_listing(listing_entry("alice@example.com", ALICE_PRIMARY))
        recipient = key_record_from_listing(listing_entry("bob@example.com", BOB_PRIMARY))
        calls = []

        def callback():
            calls.append(1)
            return "alice-pass"

        outcome = GnuPGEngine(armor=True).encrypt_and_sign([recipient], sender, source, tmp_path / "out.asc", callback)

        assert outcome.success
        assert calls == [1]
        _, args, kwargs = mock_gpg.encrypt_file.mock_calls[0]
        assert args[1] == [BOB_PRIMARY]
        assert kwargs["sign"] == ALICE_PRIMARY
        assert kwargs["passphrase"] == "alice-pass"
        assert kwargs["always_trust"] is True
        assert kwargs["armor"] is True
        assert kwargs["output"] == str(tmp_path / "out.asc")

    def test_encrypt_reports_invalid_recipients(self, mock_gpg, tmp_path):
        source = tmp_path / "in.txt"
        source.write_text("payload")
        mock_gpg.encrypt_file.return_value = MagicMock(
            ok=False, status="invalid recipient", stderr=f"[GNUPG:] INV_RECP 5 {BOB_PRIMARY}\n"
        )
        sender = key_record_from_listing(listing_entry("alice@example.com", ALICE_PRIMARY))
        recipient = key_record_from_listing(listing_entry("bob@example.com", BOB_PRIMARY))

        outcome = GnuPGEngine().encrypt_and_sign([recipient], sender, source, tmp_path / "out.asc", lambda: "pw")

        assert not outcome.success
        assert outcome.invalid_recipients[0].reason == "Key expired"

    def test_decrypt_parses_signatures(self, mock_gpg, tmp_path):
        source = tmp_path / "in.asc"
        source.write_text("armored")
        stderr = (
            f"[GNUPG:] ENC_TO {BOB_PRIMARY[-16:]} 1 0\n"
            "[GNUPG:] NEWSIG\n"
            "[GNUPG:] GOODSIG AAAAAAAAAAAAAAAA Alice <alice@example.com>\n"
            f"[GNUPG:] VALIDSIG {ALICE_PRIMARY} 2024-01-01 1704067200 0 4 0 1 8 00 {ALICE_PRIMARY}\n"
            "[GNUPG:] TRUST_ULTIMATE 0 pgp\n"
        )
        mock_gpg.decrypt_file.return_value = MagicMock(ok=True, status="decryption ok", stderr=stderr)

        outcome = GnuPGEngine().decrypt_and_verify(source, tmp_path / "out.txt", lambda: "bob-pass")

        assert outcome.success
        assert outcome.recipients[0].key_id == BOB_PRIMARY[-16:]
        assert outcome.signatures[0].fingerprint == ALICE_PRIMARY
        assert SignatureSummary.VALID in outcome.signatures[0].summary
        assert mock_gpg.decrypt_file.call_args.kwargs["passphrase"] == "bob-pass"
