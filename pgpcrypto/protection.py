"""
Certificate-backed protection for stored passphrases.

Secrets are encrypted with AES-256-GCM using a random DEK (Data Encryption Key).
The DEK is wrapped with the RSA public key of an X.509 certificate (RSA-OAEP).
The entropy value acts as the purpose string: it is bound into the AAD, so a
secret protected for one purpose cannot be unwrapped for another.
"""

import os
import base64
import binascii
import hashlib
import logging
import struct
from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import SecretRetrievalError

logger = logging.getLogger(__name__)


def normalize_subject(name: str) -> str:
    """Compare distinguished names without caring about spacing, case or RDN order.

    RFC 4514 strings list RDNs last-to-first while Windows shows them
    first-to-last, so the components are sorted.
    """
    return ",".join(sorted(part.strip().casefold() for part in name.split(",")))


def certificate_thumbprint(certificate: x509.Certificate) -> bytes:
    """SHA-256 over the DER encoding of the certificate."""
    return hashlib.sha256(certificate.public_bytes(serialization.Encoding.DER)).digest()


@dataclass
class ProtectedSecret:
    """A wrapped secret as stored in the settings file (base64 of to_bytes())."""
    thumbprint: bytes
    wrapped_dek: bytes
    nonce: bytes
    ciphertext: bytes

    VERSION = 1
    HEADER = struct.Struct(">B32sH")  # version, thumbprint, wrapped DEK length
    NONCE_LEN = 12

    def to_bytes(self) -> bytes:
        header = self.HEADER.pack(self.VERSION, self.thumbprint, len(self.wrapped_dek))
        return header + self.wrapped_dek + self.nonce + self.ciphertext

    @classmethod
    def from_bytes(cls, data: bytes) -> "ProtectedSecret":
        version, thumbprint, wrapped_len = cls.HEADER.unpack_from(data)
        if version != cls.VERSION:
            raise ValueError(f"Unsupported protected secret version {version}")
        offset = cls.HEADER.size
        wrapped_dek = data[offset:offset + wrapped_len]
        offset += wrapped_len
        nonce = data[offset:offset + cls.NONCE_LEN]
        ciphertext = data[offset + cls.NONCE_LEN:]
        if len(wrapped_dek) != wrapped_len or len(nonce) != cls.NONCE_LEN or not ciphertext:
            raise ValueError("Truncated protected secret")
        return cls(thumbprint=thumbprint, wrapped_dek=wrapped_dek, nonce=nonce, ciphertext=ciphertext)

    @staticmethod
    def associated_data(thumbprint: bytes, entropy: str) -> bytes:
        return b"pgp-batch-secret-v1" + thumbprint + entropy.encode("utf-8")


class CertificateStore:
    """A directory of PEM certificates (*.pem, *.crt) with matching <stem>.key files."""

    CERT_SUFFIXES = (".pem", ".crt")
    KEY_SUFFIX = ".key"

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def find_certificate(self, subject_name: str) -> tuple[x509.Certificate, Path]:
        """
        Find the certificate whose subject equals the given distinguished name.

        Args:
            subject_name: Distinguished name such as "CN=Batch Job Data Protection"

        Returns:
            Tuple of (certificate, path to the certificate file)

        Raises:
            SecretRetrievalError: If no certificate matches
        """
        wanted = normalize_subject(subject_name)
        if self.directory.is_dir():
            for path in sorted(self.directory.iterdir()):
                if path.suffix.lower() not in self.CERT_SUFFIXES:
                    continue
                try:
                    certificate = x509.load_pem_x509_certificate(path.read_bytes())
                except ValueError:
                    logger.debug(f"Skipping {path}: not a PEM certificate")
                    continue
                if normalize_subject(certificate.subject.rfc4514_string()) == wanted:
                    return certificate, path

        raise SecretRetrievalError(
            f"No certificate with subject [{subject_name}] in [{self.directory}]"
        )

    def load_private_key(self, certificate_path: Path) -> rsa.RSAPrivateKey:
        """Load the unencrypted RSA private key stored next to a certificate."""
        key_path = certificate_path.with_suffix(self.KEY_SUFFIX)
        if not key_path.exists():
            raise SecretRetrievalError(f"Private key [{key_path}] not found")
        try:
            private_key = serialization.load_pem_private_key(key_path.read_bytes(), password=None)
        except (ValueError, TypeError) as e:
            raise SecretRetrievalError(f"Unable to load private key [{key_path}]: {e}") from e
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise SecretRetrievalError(f"Private key [{key_path}] is not an RSA key")
        return private_key


_OAEP = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)


def protect_secret(secret: str, entropy: str, certificate: x509.Certificate) -> str:
    """
    Protect a secret so only the holder of the certificate's private key can read it.

    Args:
        secret: The plaintext passphrase
        entropy: Purpose string that must be supplied again to unprotect
        certificate: RSA certificate whose public key wraps the DEK

    Returns:
        Base64 text suitable for the settings file
    """
    public_key = certificate.public_key()
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise ValueError("Data protection certificate must carry an RSA public key")

    thumbprint = certificate_thumbprint(certificate)

    # Encrypt secret with a random DEK
    dek = AESGCM.generate_key(bit_length=256)
    nonce = os.urandom(ProtectedSecret.NONCE_LEN)
    ciphertext = AESGCM(dek).encrypt(
        nonce,
        secret.encode("utf-8"),
        ProtectedSecret.associated_data(thumbprint, entropy),
    )

    # Wrap the DEK for the certificate holder
    wrapped_dek = public_key.encrypt(dek, _OAEP)

    blob = ProtectedSecret(
        thumbprint=thumbprint,
        wrapped_dek=wrapped_dek,
        nonce=nonce,
        ciphertext=ciphertext,
    )
    return base64.b64encode(blob.to_bytes()).decode("ascii")


def unprotect_secret(ciphertext_b64: str, entropy: str, subject_name: str, store_dir: Path) -> str:
    """
    Unwrap a secret produced by protect_secret().

    Args:
        ciphertext_b64: Base64 text from the settings file
        entropy: The purpose string used when protecting
        subject_name: Distinguished name selecting the certificate
        store_dir: Directory holding the certificate and its private key

    Returns:
        The plaintext secret

    Raises:
        SecretRetrievalError: On any decoding, key or authentication failure
    """
    store = CertificateStore(store_dir)
    certificate, certificate_path = store.find_certificate(subject_name)

    try:
        blob = ProtectedSecret.from_bytes(base64.b64decode(ciphertext_b64, validate=True))
    except (binascii.Error, struct.error, ValueError) as e:
        raise SecretRetrievalError(f"Malformed protected secret: {e}") from e

    thumbprint = certificate_thumbprint(certificate)
    if blob.thumbprint != thumbprint:
        raise SecretRetrievalError(
            f"Protected secret was not issued for certificate [{subject_name}]"
        )

    private_key = store.load_private_key(certificate_path)
    try:
        dek = private_key.decrypt(blob.wrapped_dek, _OAEP)
        plaintext = AESGCM(dek).decrypt(
            blob.nonce,
            blob.ciphertext,
            ProtectedSecret.associated_data(thumbprint, entropy),
        )
    except (ValueError, InvalidTag) as e:
        raise SecretRetrievalError("Unable to unprotect secret: wrong entropy or corrupted data") from e

    return plaintext.decode("utf-8")
