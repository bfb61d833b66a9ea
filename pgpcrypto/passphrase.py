"""
Passphrase resolution for the sender and recipient private keys.

The passphrase is never typed in: it is fetched from the backend named by the
PassphraseProtectionMode setting.
- AWS_SECRETSMANAGER: JSON secret in AWS Secrets Manager (boto3)
- WINDOWS_DPAPI: base64 blob unwrapped with the Windows Data Protection API
- ASPNET_DPAPI (default): base64 blob unwrapped with a data protection certificate
"""

import base64
import binascii
import enum
import json
import logging
from pathlib import Path
from typing import Callable, Mapping, Optional, Protocol

from .errors import SecretRetrievalError
from .models import Role, RuntimeSettings
from .protection import unprotect_secret

logger = logging.getLogger(__name__)

MODE_SETTING = "PassphraseProtectionMode"
ENTROPY_SETTING = "entropy"
CERT_SUBJECT_SETTING = "SSLCertDistinguishedSubjectName"
CERT_STORE_SETTING = "DataProtectionCertificateStore"
SECRET_FIELD = "SecretPassPhrase"


class PassphraseBackendMode(enum.Enum):
    """Where passphrases are kept."""
    AWS_SECRETS_MANAGER = "AWS_SECRETSMANAGER"
    WINDOWS_PROTECTED_STORAGE = "WINDOWS_DPAPI"
    PLATFORM_DATA_PROTECTION = "ASPNET_DPAPI"

    @classmethod
    def from_settings(cls, settings: RuntimeSettings) -> "PassphraseBackendMode":
        """Parse the mode setting; unknown or missing values fall back to the default."""
        raw = (settings.get(MODE_SETTING) or "").strip().upper()
        for mode in cls:
            if mode.value == raw:
                return mode
        return cls.PLATFORM_DATA_PROTECTION


class PassphraseResolver(Protocol):
    """Anything that can produce a role's passphrase from the settings."""

    def resolve(self, role: Role, settings: RuntimeSettings) -> str:
        ...


def _require(settings: RuntimeSettings, key: str) -> str:
    value = settings.get(key)
    if value is None or not value.strip():
        raise SecretRetrievalError(f"Setting [{key}] is required to retrieve the passphrase")
    return value


# ----------------------------------------------------------------------------
# Default backend calls
# ----------------------------------------------------------------------------

def fetch_aws_secret(secret_name: str) -> str:
    """Fetch a secret string from AWS Secrets Manager using the default credential chain."""
    import boto3
    from botocore.exceptions import BotoCoreError, ClientError

    try:
        client = boto3.session.Session().client("secretsmanager")
        response = client.get_secret_value(SecretId=secret_name)
    except (BotoCoreError, ClientError) as e:
        raise SecretRetrievalError(f"AWS Secrets Manager lookup of [{secret_name}] failed: {e}") from e

    secret = response.get("SecretString")
    if secret is None:
        raise SecretRetrievalError(f"AWS secret [{secret_name}] has no SecretString")
    return secret


def unprotect_windows_dpapi(ciphertext_b64: str, entropy: str) -> str:
    """Unwrap a DPAPI blob in the current-user scope (Windows only)."""
    try:
        import win32crypt
    except ImportError as e:
        raise SecretRetrievalError("Windows Data Protection API is only available on Windows") from e

    try:
        encrypted = base64.b64decode(ciphertext_b64, validate=True)
    except binascii.Error as e:
        raise SecretRetrievalError(f"DPAPI blob is not valid base64: {e}") from e

    # Entropy and plaintext are UTF-16-LE, as written by the .NET ProtectedData API
    _, decrypted = win32crypt.CryptUnprotectData(
        encrypted,
        entropy.encode("utf-16-le"),
        None,
        None,
        0,
    )
    return decrypted.decode("utf-16-le")


def default_certificate_store(settings: RuntimeSettings) -> Path:
    """Certificate directory from the settings, else the application default."""
    configured = settings.get(CERT_STORE_SETTING)
    if configured and configured.strip():
        return Path(configured.strip()).expanduser()

    from config import config
    return config.certs_dir


# ----------------------------------------------------------------------------
# Resolvers, one per backend mode
# ----------------------------------------------------------------------------

class AwsSecretsManagerResolver:
    """Passphrase stored as {"SecretPassPhrase": "..."} in AWS Secrets Manager."""

    def __init__(self, fetch_secret: Optional[Callable[[str], str]] = None):
        self.fetch_secret = fetch_secret or fetch_aws_secret

    def resolve(self, role: Role, settings: RuntimeSettings) -> str:
        secret_name = _require(settings, f"{role.value}AWSSecretsName")

        try:
            secret_string = self.fetch_secret(secret_name)
        except SecretRetrievalError:
            raise
        except Exception as e:
            raise SecretRetrievalError(f"Fetching AWS secret [{secret_name}] failed: {e}") from e

        try:
            secrets = json.loads(secret_string)
        except (TypeError, ValueError) as e:
            raise SecretRetrievalError(f"AWS secret [{secret_name}] is not valid JSON") from e

        if not isinstance(secrets, dict) or not isinstance(secrets.get(SECRET_FIELD), str):
            raise SecretRetrievalError(
                f"Failed to retrieve {SECRET_FIELD} from AWS secret [{secret_name}]"
            )

        logger.debug("Fetched secret passphrase from AWS Secrets Manager...")
        return secrets[SECRET_FIELD]


class WindowsDpapiResolver:
    """Passphrase protected with DPAPI for the current Windows user."""

    def __init__(self, unprotect: Optional[Callable[[str, str], str]] = None):
        self.unprotect = unprotect or unprotect_windows_dpapi

    def resolve(self, role: Role, settings: RuntimeSettings) -> str:
        encrypted = _require(settings, f"{role.value}EncryptedSecretPassPhrase_WIND_DPAPI")
        entropy = _require(settings, ENTROPY_SETTING)

        try:
            passphrase = self.unprotect(encrypted, entropy)
        except SecretRetrievalError:
            raise
        except Exception as e:
            raise SecretRetrievalError(f"Windows DPAPI unprotect failed: {e}") from e

        logger.debug("Decrypted secret passphrase using Windows Data Protection API...")
        return passphrase


class DataProtectionResolver:
    """Passphrase protected with a data protection certificate (any platform)."""

    def __init__(self, unprotect: Optional[Callable[[str, str, str, Path], str]] = None):
        self.unprotect = unprotect or unprotect_secret

    def resolve(self, role: Role, settings: RuntimeSettings) -> str:
        encrypted = _require(settings, f"{role.value}EncryptedSecretPassPhrase_ASP_DPAPI")
        entropy = _require(settings, ENTROPY_SETTING)
        subject_name = _require(settings, CERT_SUBJECT_SETTING)

        try:
            passphrase = self.unprotect(encrypted, entropy, subject_name, default_certificate_store(settings))
        except SecretRetrievalError:
            raise
        except Exception as e:
            raise SecretRetrievalError(f"Certificate-backed unprotect failed: {e}") from e

        logger.debug("Decrypted secret passphrase using certificate data protection...")
        return passphrase


_RESOLVER_TYPES = {
    PassphraseBackendMode.AWS_SECRETS_MANAGER: AwsSecretsManagerResolver,
    PassphraseBackendMode.WINDOWS_PROTECTED_STORAGE: WindowsDpapiResolver,
    PassphraseBackendMode.PLATFORM_DATA_PROTECTION: DataProtectionResolver,
}


def resolver_for(mode: PassphraseBackendMode) -> PassphraseResolver:
    """Build the default resolver for a backend mode."""
    return _RESOLVER_TYPES[mode]()


def resolve_passphrase(
    role: Role,
    settings: RuntimeSettings,
    resolvers: Optional[Mapping[PassphraseBackendMode, PassphraseResolver]] = None,
) -> str:
    """
    Resolve the passphrase for a role using the configured backend.

    Args:
        role: Sender or recipient
        settings: Runtime settings naming the backend and its locators
        resolvers: Optional per-mode overrides (tests, custom backends)

    Returns:
        The plaintext passphrase

    Raises:
        SecretRetrievalError: If the backend settings are missing or the lookup fails
    """
    mode = PassphraseBackendMode.from_settings(settings)
    logger.debug(f"Fetching {role.value}'s secret passphrase programmatically [{mode.value}]...")

    resolver = (resolvers or {}).get(mode) or resolver_for(mode)
    return resolver.resolve(role, settings)
