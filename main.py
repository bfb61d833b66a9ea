"""
OpenPGP Batch Exchange - Main Entry Point

Encrypts+signs outbound files or decrypts+verifies inbound files for one
configured sender/recipient pair. Settings come from a scenario JSON file,
either given directly (--config) or looked up in appsettings.json (--scenario).
"""

import sys
import getpass
import argparse
import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from config import (
    VERSION,
    config,
    load_settings,
    log_level_from_appsettings,
    resolve_scenario,
)
from exchange import FolderProcessor
from exchange.processor import ProgressUpdate
from pgpcrypto import CryptoWorkflow, GnuPGEngine
from pgpcrypto.errors import FatalError, FileOperationError
from pgpcrypto.models import RuntimeSettings
from pgpcrypto.protection import CertificateStore, protect_secret

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FILE_FAILURES = 1
EXIT_FATAL = 2


# ============================================================================
# Setup
# ============================================================================

def setup_logging(level: int = logging.INFO, log_dir: Optional[Path] = None) -> None:
    """
    Configure console logging and a daily rolling log file.

    Args:
        level: Minimum level for all handlers
        log_dir: Directory for log.txt (no file logging if None)
    """
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_dir is not None:
        file_handler = logging.handlers.TimedRotatingFileHandler(
            log_dir / "log.txt",
            when="midnight",
            backupCount=31,
            encoding="utf-8",
        )
        handlers.append(file_handler)

    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # gpg subprocess chatter is only useful when debugging
    if level > logging.DEBUG:
        logging.getLogger("gnupg").setLevel(logging.WARNING)


def create_parser() -> argparse.ArgumentParser:
    """Create the command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog="pgp-batch",
        description="Encrypt+sign or decrypt+verify files with OpenPGP for a configured sender/recipient",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Process the source folder of a scenario from appsettings.json
  pgp-batch run --scenario Config_RunAsSender_for_SystemA

  # Use a settings file directly
  pgp-batch run --config asRecipientForSystemA.json

  # Single file
  pgp-batch encrypt report.csv report.csv.asc --config asSenderForSystemA.json

  # Check that both passphrases can be retrieved
  pgp-batch test-secrets --scenario Config_RunAsSender_for_SystemA

  # Protect a passphrase with a data protection certificate
  pgp-batch protect-secret --subject "CN=Batch Job Data Protection" --entropy "my purpose"
        """
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable DEBUG logging")
    parser.add_argument("--no-log-file", action="store_true", help="Log to the console only")

    settings_options = argparse.ArgumentParser(add_help=False)
    source = settings_options.add_mutually_exclusive_group(required=True)
    source.add_argument("--config", type=Path, help="Scenario settings JSON file")
    source.add_argument("--scenario", help="Scenario name under ScenarioConfigurations in appsettings.json")
    settings_options.add_argument(
        "--appsettings",
        type=Path,
        default=config.APPSETTINGS_PATH,
        help=f"Application settings file (default: {config.APPSETTINGS_PATH})",
    )
    settings_options.add_argument("--gnupghome", type=Path, default=config.GNUPG_HOME, help="GnuPG home directory")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", parents=[settings_options], help="Process every file in the source folder")

    for name, help_text in (
        ("encrypt", "Encrypt and sign one file"),
        ("decrypt", "Decrypt one file and verify the sender"),
    ):
        single = subparsers.add_parser(name, parents=[settings_options], help=help_text)
        single.add_argument("source", type=Path)
        single.add_argument("destination", type=Path)
        single.add_argument("--archive", type=Path, help="Move the source here afterwards")

    subparsers.add_parser(
        "test-secrets",
        parents=[settings_options],
        help="Retrieve the sender and recipient passphrases from the configured backend",
    )

    protect = subparsers.add_parser("protect-secret", help="Protect a passphrase with a certificate")
    protect.add_argument("--subject", required=True, help="Certificate distinguished subject name")
    protect.add_argument("--entropy", required=True, help="Purpose string (the 'entropy' setting)")
    protect.add_argument("--store", type=Path, default=None, help="Certificate directory")

    return parser


def load_runtime_settings(args: argparse.Namespace) -> RuntimeSettings:
    """Load settings from --config or from the --scenario entry of appsettings.json."""
    if args.config is not None:
        path = args.config
    else:
        path = resolve_scenario(args.appsettings, args.scenario)
    logger.info(f"Loading runtime settings from [{path}]")
    return load_settings(path)


def create_engine(args: argparse.Namespace) -> GnuPGEngine:
    """Open a GnuPG session for this run."""
    return GnuPGEngine(gnupghome=args.gnupghome, gpgbinary=config.GPG_BINARY, armor=config.ARMOR)


def log_progress(update: ProgressUpdate) -> None:
    logger.debug(f"[{update.stage}] {update.message} ({update.progress:.0%})")


# ============================================================================
# Commands
# ============================================================================

def command_protect_secret(args: argparse.Namespace) -> int:
    store = CertificateStore(args.store or config.certs_dir)
    certificate, _ = store.find_certificate(args.subject)

    secret = getpass.getpass("Secret passphrase to protect: ")
    if not secret:
        logger.error("Nothing to protect: empty passphrase")
        return EXIT_FATAL

    print(protect_secret(secret, args.entropy, certificate))
    return EXIT_OK


def command_workflow(args: argparse.Namespace) -> int:
    settings = load_runtime_settings(args)
    workflow = CryptoWorkflow(create_engine(args))
    context = workflow.init(settings)

    if args.command == "test-secrets":
        workflow.test_secrets(context)
        return EXIT_OK

    if args.command == "encrypt":
        workflow.encrypt_and_sign_file(context, args.source, args.destination, args.archive)
        return EXIT_OK

    if args.command == "decrypt":
        workflow.decrypt_and_verify_file(context, args.source, args.destination, args.archive)
        return EXIT_OK

    result = FolderProcessor(workflow, context, progress_callback=log_progress).run()
    for failure in result.failures:
        logger.error(f"{failure.source.name}: {failure.error_type}: {failure.error}")
    return EXIT_OK if result.success else EXIT_FILE_FAILURES


# ============================================================================
# Main Entry Point
# ============================================================================

def main(argv: Optional[list[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    appsettings = getattr(args, "appsettings", config.APPSETTINGS_PATH)
    level = logging.DEBUG if args.verbose else log_level_from_appsettings(appsettings)
    setup_logging(level, None if args.no_log_file else config.logs_dir)

    logger.info(f"OpenPGP Batch Exchange {VERSION} started ({args.command})")

    try:
        if args.command == "protect-secret":
            return command_protect_secret(args)
        return command_workflow(args)
    except (FatalError, FileNotFoundError) as e:
        logger.error(f"Fatal: {e}")
        return EXIT_FATAL
    except FileOperationError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return EXIT_FILE_FAILURES


if __name__ == "__main__":
    sys.exit(main())
