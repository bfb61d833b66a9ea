"""Tests for passphrase backends and mode selection."""

import json

import pytest

from pgpcrypto.errors import SecretRetrievalError
from pgpcrypto.models import Role
from pgpcrypto.passphrase import (
    AwsSecretsManagerResolver,
    DataProtectionResolver,
    PassphraseBackendMode,
    WindowsDpapiResolver,
    resolve_passphrase,
    resolver_for,
)


class TestBackendMode:

    @pytest.mark.parametrize("raw, expected", [
        ("AWS_SECRETSMANAGER", PassphraseBackendMode.AWS_SECRETS_MANAGER),
        (" windows_dpapi ", PassphraseBackendMode.WINDOWS_PROTECTED_STORAGE),
        ("ASPNET_DPAPI", PassphraseBackendMode.PLATFORM_DATA_PROTECTION),
        ("something-else", PassphraseBackendMode.PLATFORM_DATA_PROTECTION),
        ("", PassphraseBackendMode.PLATFORM_DATA_PROTECTION),
    ])
    def test_from_settings(self, raw, expected):
        assert PassphraseBackendMode.from_settings({"PassphraseProtectionMode": raw}) is expected

    def test_missing_mode_uses_default(self):
        assert PassphraseBackendMode.from_settings({}) is PassphraseBackendMode.PLATFORM_DATA_PROTECTION

    def test_default_resolver_types(self):
        assert isinstance(resolver_for(PassphraseBackendMode.AWS_SECRETS_MANAGER), AwsSecretsManagerResolver)
        assert isinstance(resolver_for(PassphraseBackendMode.WINDOWS_PROTECTED_STORAGE), WindowsDpapiResolver)
        assert isinstance(resolver_for(PassphraseBackendMode.PLATFORM_DATA_PROTECTION), DataProtectionResolver)


class TestAwsSecretsManagerResolver:

    def test_fetches_role_secret_once(self, settings, aws_resolver, secret_lookups):
        passphrase = aws_resolver.resolve(Role.RECIPIENT, settings)

        assert passphrase == "pass-for-bob-secret"
        assert secret_lookups == ["bob-secret"]

    def test_missing_secret_name(self, settings, aws_resolver):
        del settings["SenderAWSSecretsName"]

        with pytest.raises(SecretRetrievalError, match="SenderAWSSecretsName"):
            aws_resolver.resolve(Role.SENDER, settings)

    def test_secret_without_passphrase_field(self, settings):
        resolver = AwsSecretsManagerResolver(fetch_secret=lambda name: json.dumps({"Other": "x"}))

        with pytest.raises(SecretRetrievalError, match="SecretPassPhrase"):
            resolver.resolve(Role.SENDER, settings)

    def test_secret_not_json(self, settings):
        resolver = AwsSecretsManagerResolver(fetch_secret=lambda name: "not json")

        with pytest.raises(SecretRetrievalError):
            resolver.resolve(Role.SENDER, settings)

    def test_backend_exception_wrapped(self, settings):
        def fetch(name):
            raise RuntimeError("network down")

        with pytest.raises(SecretRetrievalError, match="network down"):
            AwsSecretsManagerResolver(fetch_secret=fetch).resolve(Role.SENDER, settings)


class TestWindowsDpapiResolver:

    def test_unprotects_with_entropy(self):
        calls = []

        def unprotect(blob, entropy):
            calls.append((blob, entropy))
            return "dpapi-pass"

        settings = {
            "SenderEncryptedSecretPassPhrase_WIND_DPAPI": "AQID",
            "entropy": "purpose",
        }

        assert WindowsDpapiResolver(unprotect).resolve(Role.SENDER, settings) == "dpapi-pass"
        assert calls == [("AQID", "purpose")]

    def test_missing_entropy(self):
        settings = {"RecipientEncryptedSecretPassPhrase_WIND_DPAPI": "AQID"}

        with pytest.raises(SecretRetrievalError, match="entropy"):
            WindowsDpapiResolver(lambda blob, entropy: "x").resolve(Role.RECIPIENT, settings)

    def test_unprotect_failure_wrapped(self):
        def unprotect(blob, entropy):
            raise OSError("wrong user")

        settings = {"SenderEncryptedSecretPassPhrase_WIND_DPAPI": "AQID", "entropy": "purpose"}

        with pytest.raises(SecretRetrievalError):
            WindowsDpapiResolver(unprotect).resolve(Role.SENDER, settings)


class TestDataProtectionResolver:

    def test_passes_subject_and_store(self, tmp_path):
        calls = []

        def unprotect(blob, entropy, subject, store):
            calls.append((blob, entropy, subject, store))
            return "cert-pass"

        settings = {
            "RecipientEncryptedSecretPassPhrase_ASP_DPAPI": "blob",
            "entropy": "purpose",
            "SSLCertDistinguishedSubjectName": "CN=Batch",
            "DataProtectionCertificateStore": str(tmp_path),
        }

        assert DataProtectionResolver(unprotect).resolve(Role.RECIPIENT, settings) == "cert-pass"
        assert calls == [("blob", "purpose", "CN=Batch", tmp_path)]

    def test_missing_subject(self):
        settings = {"SenderEncryptedSecretPassPhrase_ASP_DPAPI": "blob", "entropy": "purpose"}

        with pytest.raises(SecretRetrievalError, match="SSLCertDistinguishedSubjectName"):
            DataProtectionResolver(lambda *args: "x").resolve(Role.SENDER, settings)


class TestResolvePassphrase:

    def test_uses_override_for_configured_mode(self, settings, aws_resolver, secret_lookups):
        resolvers = {PassphraseBackendMode.AWS_SECRETS_MANAGER: aws_resolver}

        assert resolve_passphrase(Role.SENDER, settings, resolvers) == "pass-for-alice-secret"
        assert secret_lookups == ["alice-secret"]

    def test_default_mode_without_settings_fails_cleanly(self):
        with pytest.raises(SecretRetrievalError):
            resolve_passphrase(Role.SENDER, {})
