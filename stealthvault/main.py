"""StealthVault command-line entrypoint."""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from stealthvault import __version__

logger = logging.getLogger("stealthvault")

GENERIC_FAILURE = "Incorrect PIN or vault unavailable."


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stealthvault", description="PIN-protected meta key vault."
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--data-dir", type=Path, default=None, help="storage, config and log directory"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    store = sub.add_parser("store", help="encrypt a meta key file under a new PIN")
    store.add_argument("keyfile", type=Path, help="JSON object keyed by chain")
    sub.add_parser("unlock", help="decrypt with the PIN and refresh the session")
    sub.add_parser("session", help="decrypt with the cached session key")
    sub.add_parser("status", help="show whether a vault and a valid session exist")
    sub.add_parser("lock", help="drop the session key, keep the vault")
    sub.add_parser("clear", help="delete vault and session key")
    return parser


def _read_pin(prompt: str = "PIN: ") -> str:
    return getpass.getpass(prompt)


def _print_public(keys) -> None:
    for chain, key_set in keys.items():
        print(f"{chain}: {key_set.address}")
        print(f"  spend pub: {key_set.metaSpendPub}")
        print(f"  view pub:  {key_set.metaViewPub}")


def _cmd_store(tab, args) -> int:
    try:
        mapping = json.loads(args.keyfile.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        print(f"ERROR: cannot read {args.keyfile}: {exc}", file=sys.stderr)
        return 1

    pin = _read_pin("New PIN: ")
    if pin != _read_pin("Confirm PIN: "):
        print("ERROR: PINs do not match.", file=sys.stderr)
        return 1

    with tab.locks.holding("vault-store") as acquired:
        if not acquired:
            print("ERROR: another instance is writing the vault.", file=sys.stderr)
            return 1
        if not tab.session.save(mapping, pin):
            print("ERROR: could not store meta keys.", file=sys.stderr)
            return 1
    tab.broadcaster.broadcast("meta-keys", {"event": "stored"})
    print("Meta keys stored.")
    return 0


def _cmd_unlock(tab, args) -> int:
    if not tab.vault.has_encrypted_vault():
        print("No vault stored.", file=sys.stderr)
        return 1
    for _ in range(tab.settings.max_pin_attempts):
        if tab.session.unlock(_read_pin()):
            _print_public(tab.session.meta_keys)
            return 0
        print(GENERIC_FAILURE, file=sys.stderr)
        if tab.vault.rate_limiter is not None and tab.vault.rate_limiter.remaining == 0:
            break
    return 1


def _cmd_session(tab, args) -> int:
    if not tab.session.load_from_session():
        print(GENERIC_FAILURE, file=sys.stderr)
        return 1
    _print_public(tab.session.meta_keys)
    return 0


def _cmd_status(tab, args) -> int:
    print(f"vault:   {'present' if tab.vault.has_encrypted_vault() else 'empty'}")
    print(f"session: {'valid' if tab.vault.has_valid_session() else 'none'}")
    return 0


def _cmd_lock(tab, args) -> int:
    tab.vault.lock()
    tab.broadcaster.broadcast("meta-keys", {"event": "locked"})
    print("Session key removed; the PIN is required for the next unlock.")
    return 0


def _cmd_clear(tab, args) -> int:
    tab.session.clear()
    tab.broadcaster.broadcast("meta-keys", {"event": "cleared"})
    print("Vault cleared.")
    return 0


COMMANDS = {
    "store": _cmd_store,
    "unlock": _cmd_unlock,
    "session": _cmd_session,
    "status": _cmd_status,
    "lock": _cmd_lock,
    "clear": _cmd_clear,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Application entry point."""
    # 1. Check dependencies
    from stealthvault import check_dependencies

    check_dependencies()

    args = build_parser().parse_args(argv)

    # 2. Resolve data directory
    from stealthvault.paths import get_data_dir, get_store_path

    data_dir = args.data_dir or get_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)

    # 3. Initialise logging
    from stealthvault.logging_setup import setup_secure_logging

    setup_secure_logging(data_dir, logging.DEBUG if args.verbose else logging.INFO)

    # 4. Settings, written on first run
    from stealthvault.config import Config

    if not Config.config_exists(data_dir):
        Config.write_defaults(data_dir)
    settings = Config.load_settings(data_dir)

    # 5. Run the command against the file-backed store
    from stealthvault.storage.backend import FileBackend
    from stealthvault.tab import Tab
    from stealthvault.util.rate_limit import RateLimiter

    backend = FileBackend(get_store_path(data_dir))
    limiter = RateLimiter(max_attempts=settings.max_pin_attempts, delay_base=Config.PIN_DELAY_BASE)
    try:
        with Tab(backend, settings, rate_limiter=limiter) as tab:
            return COMMANDS[args.command](tab, args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.critical("Critical error: %s", exc)
        raise


if __name__ == "__main__":
    sys.exit(main())
