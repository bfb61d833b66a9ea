"""
Encrypt+sign and decrypt+verify workflow for one sender/recipient pair.

Decrypted output is only kept when at least one signature is valid, made by a
fully trusted key, and traceable to the configured sender key. Otherwise the
plaintext is deleted before SenderAuthenticationError is raised.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional, TypeVar, Union

from exchange.archive import ArchiveManager

from .engine import OpenPGPEngine, PassphraseCallback
from .errors import (
    ConfigurationError,
    EncryptionRecipientError,
    EngineOperationError,
    FileOperationError,
    NotInitializedError,
    SenderAuthenticationError,
)
from .keys import KeyDirectory, KeyRecord
from .models import (
    AuthenticationDecision,
    EncryptionOutcome,
    Identity,
    Role,
    RuntimeSettings,
    VerificationOutcome,
    freeze_settings,
)
from .passphrase import PassphraseBackendMode, PassphraseResolver, resolve_passphrase

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
T = TypeVar("T")

SENDER_EMAIL_SETTING = "SenderEmailAddress"
RECIPIENT_EMAIL_SETTING = "RecipientEmailAddress"


@dataclass(frozen=True)
class WorkflowContext:
    """Everything Init() established, passed explicitly into each file operation."""
    sender: Identity
    recipient: Identity
    keys: KeyDirectory
    settings: RuntimeSettings


def authenticate_sender(outcome: VerificationOutcome, sender_key: KeyRecord) -> AuthenticationDecision:
    """
    Count signatures that are valid, fully trusted and made by the sender key.

    Untrusted or invalid signatures are logged but do not abort anything on
    their own; only the final count matters.

    Args:
        outcome: Signatures reported by the engine
        sender_key: The configured sender key

    Returns:
        The decision with its match count
    """
    match_count = 0
    for sig in outcome.signatures:
        logger.info(
            "Sender's signature verification: "
            f"fingerprint={sig.fingerprint} hash={sig.hash_algorithm} "
            f"key={sig.key_algorithm} timestamp={sig.timestamp} "
            f"summary={sig.summary} validity={sig.validity.name}"
        )
        if not sig.is_trusted_valid:
            logger.error(f"Sender's signature with fingerprint [{sig.fingerprint}] is invalid or not fully trusted!")
            continue
        if sig.fingerprint and KeyDirectory.verify_thumbprint(sender_key, sig.fingerprint):
            match_count += 1

    return AuthenticationDecision(match_count=match_count, outcome=outcome)


def _file_size_kb(path: Path) -> float:
    try:
        return path.stat().st_size / 1024.0
    except OSError:
        return 0.0


def _remove_if_exists(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


class CryptoWorkflow:
    """Runs the two file operations against one engine session."""

    def __init__(
        self,
        engine: OpenPGPEngine,
        passphrase_resolvers: Optional[Mapping[PassphraseBackendMode, PassphraseResolver]] = None,
        archive_manager: Optional[ArchiveManager] = None,
    ):
        """
        Initialize the workflow.

        Args:
            engine: OpenPGP engine session owned by this workflow
            passphrase_resolvers: Optional per-mode passphrase resolver overrides
            archive_manager: Archive mover (a default one is created if omitted)
        """
        self.engine = engine
        self.passphrase_resolvers = passphrase_resolvers
        self.archive_manager = archive_manager or ArchiveManager()

    def init(self, settings: Mapping[str, str]) -> WorkflowContext:
        """
        Validate identities and bind them to keys from the engine's keyring.

        Args:
            settings: Flat runtime settings

        Returns:
            The immutable context for subsequent file operations

        Raises:
            ConfigurationError: If an email setting is missing or blank
            InvalidKeyError: If the keyring returns a key without a user id
        """
        if settings is None:
            raise ConfigurationError("Runtime settings not set")
        settings = freeze_settings(settings)

        sender_email = settings.get(SENDER_EMAIL_SETTING)
        if sender_email is None or not sender_email.strip():
            raise ConfigurationError(f"{SENDER_EMAIL_SETTING} not configured")
        recipient_email = settings.get(RECIPIENT_EMAIL_SETTING)
        if recipient_email is None or not recipient_email.strip():
            raise ConfigurationError(f"{RECIPIENT_EMAIL_SETTING} not configured")

        sender = Identity(sender_email)
        recipient = Identity(recipient_email)

        candidates = self.engine.list_keys([sender.email, recipient.email], secret_only=False)
        keys = KeyDirectory.initialize(sender, recipient, candidates)

        info = self.engine.engine_info()
        logger.info("Engine info: " + ", ".join(f"{name}={value}" for name, value in info.items()))

        return WorkflowContext(sender=sender, recipient=recipient, keys=keys, settings=settings)

    def _passphrase_callback(self, role: Role, settings: RuntimeSettings) -> PassphraseCallback:
        def callback() -> str:
            return resolve_passphrase(role, settings, self.passphrase_resolvers)
        return callback

    @staticmethod
    def _require_context(context: Optional[WorkflowContext]) -> tuple[KeyRecord, KeyRecord]:
        if context is None:
            raise NotInitializedError("Workflow not initialized. Call init() first.")
        return context.keys.require_sender(), context.keys.require_recipient()

    def encrypt_and_sign_file(
        self,
        context: Optional[WorkflowContext],
        source: PathLike,
        destination: PathLike,
        archive: Optional[PathLike] = None,
    ) -> EncryptionOutcome:
        """
        Encrypt a file for the recipient and sign it with the sender key.

        Args:
            context: Context returned by init()
            source: Plaintext file
            destination: Where the armored ciphertext is written
            archive: Optional path the source is moved to after success

        Returns:
            The engine's encryption outcome

        Raises:
            NotInitializedError: If init() has not run or a key is missing
            EncryptionRecipientError: If the engine rejected the recipient key
            EngineOperationError: If the engine failed for another reason
            SecretRetrievalError: If the sender passphrase could not be resolved
        """
        sender_key, recipient_key = self._require_context(context)
        source, destination = Path(source), Path(destination)

        logger.info(f"Source file size: {_file_size_kb(source):.2f} KBytes...")
        outcome = self._run_engine(
            f"Encryption of [{source}]",
            destination,
            self.engine.encrypt_and_sign,
            [recipient_key],
            sender_key,
            source,
            destination,
            self._passphrase_callback(Role.SENDER, context.settings),
            always_trust=True,
        )
        logger.info(f"Destination file size: {_file_size_kb(destination):.2f} KBytes...")

        if outcome.invalid_recipients:
            for key in outcome.invalid_recipients:
                logger.error(f"Invalid key: {key.fingerprint} ({key.reason})")
            _remove_if_exists(destination)
            raise EncryptionRecipientError(
                f"Engine rejected {len(outcome.invalid_recipients)} recipient key(s) for [{source}]",
                outcome.invalid_recipients,
            )

        if not outcome.success:
            _remove_if_exists(destination)
            raise EngineOperationError(f"Encryption of [{source}] failed: {outcome.status or 'unknown error'}")

        logger.info(f"Successfully encrypted and signed [{source}] and saved it to [{destination}]!")

        self._archive(source, archive)
        return outcome

    def decrypt_and_verify_file(
        self,
        context: Optional[WorkflowContext],
        source: PathLike,
        destination: PathLike,
        archive: Optional[PathLike] = None,
    ) -> AuthenticationDecision:
        """
        Decrypt a file and keep the plaintext only if the sender is authenticated.

        Args:
            context: Context returned by init()
            source: Encrypted file
            destination: Where the plaintext is written
            archive: Optional path the source is moved to (attempted whatever the
                verification outcome)

        Returns:
            The authentication decision (always authenticated when returned)

        Raises:
            NotInitializedError: If init() has not run or a key is missing
            EngineOperationError: If decryption failed; the destination is removed
            SenderAuthenticationError: If no matching trusted signature was found;
                the destination is removed
            SecretRetrievalError: If the recipient passphrase could not be resolved
        """
        sender_key, _ = self._require_context(context)
        source, destination = Path(source), Path(destination)

        logger.info(f"Source file size: {_file_size_kb(source):.2f} KBytes...")
        outcome = self._run_engine(
            f"Decryption of [{source}]",
            destination,
            self.engine.decrypt_and_verify,
            source,
            destination,
            self._passphrase_callback(Role.RECIPIENT, context.settings),
        )
        logger.info(f"Destination file size: {_file_size_kb(destination):.2f} KBytes...")

        if not outcome.success:
            _remove_if_exists(destination)
            raise EngineOperationError(f"Decryption of [{source}] failed: {outcome.status or 'unknown error'}")

        # Plaintext is removed before anything else can fail unless the sender is proven
        authenticated = False
        try:
            if outcome.recipients:
                for recipient in outcome.recipients:
                    logger.info(f"File decryption: key id {recipient.key_id} with {recipient.algorithm} algorithm")
            else:
                logger.warning("Recipients none!")

            decision = authenticate_sender(outcome, sender_key)
            authenticated = decision.authenticated
        finally:
            if not authenticated:
                _remove_if_exists(destination)

        self._archive(source, archive)

        if not authenticated:
            raise SenderAuthenticationError(
                "Sender authentication failed! Either the sender's signature is invalid or the "
                "fingerprint of the actual sender's key-in-use does not match the configured "
                f"sender's key-for-use. The decrypted file [{destination}] has been deleted.",
                destination=destination,
            )

        logger.info(f"Successfully decrypted and verified [{source}] and saved it to [{destination}]!")
        return decision

    @staticmethod
    def _run_engine(description: str, destination: Path, operation: Callable[..., T], *args, **kwargs) -> T:
        """Run one engine call; any failure removes the destination and stays file-level."""
        try:
            return operation(*args, **kwargs)
        except FileOperationError:
            _remove_if_exists(destination)
            raise
        except Exception as e:
            _remove_if_exists(destination)
            raise EngineOperationError(f"{description} failed: {e}") from e

    def _archive(self, source: Path, archive: Optional[PathLike]) -> None:
        """Best-effort move of the processed source; failures are only logged."""
        if not archive:
            return
        try:
            self.archive_manager.move(source, Path(archive))
        except Exception as e:
            logger.warning(
                f"Unable to archive source file [{source}] to [{archive}]: {e}. "
                "Skipping archival...Please perform archiving manually."
            )

    def test_secrets(self, context: Optional[WorkflowContext]) -> None:
        """Resolve both passphrases once to check the configured secret backend."""
        if context is None:
            raise NotInitializedError("Workflow not initialized. Call init() first.")

        logger.info("Testing secrets manager...")
        for role in Role:
            self._passphrase_callback(role, context.settings)()
            logger.info(f"{role.value}'s secret passphrase retrieved")
