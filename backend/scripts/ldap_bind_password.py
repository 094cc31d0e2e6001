#!/usr/bin/env python3
"""Store or remove the directory bind password in the OS keychain.

Once stored, ``LDAP_BIND_PASSWORD`` no longer needs to live in ``.env``;
the settings loader reads it from the keychain first.

Usage:
    python -m scripts.ldap_bind_password set                  # prompt for it
    python -m scripts.ldap_bind_password set --env-file .env  # copy from .env
    python -m scripts.ldap_bind_password status
    python -m scripts.ldap_bind_password clear
"""

import argparse
import getpass
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import dotenv_values

from services.credential_manager import delete_credential, get_credential, set_credential

KEY = "LDAP_BIND_PASSWORD"


def store(env_file: Path | None = None) -> int:
    """Store the bind password, read from ``env_file`` or an interactive prompt.

    Returns:
        Process exit code.
    """
    if env_file is not None:
        if not env_file.exists():
            print(f"No .env file found at {env_file}")
            return 1
        value = dotenv_values(env_file).get(KEY)
        if not value:
            print(f"{KEY} is empty or missing in {env_file}")
            return 1
    else:
        value = getpass.getpass("Bind password: ")

    if get_credential(KEY) == value:
        print(f"{KEY} is already in the keychain")
        return 0
    if not set_credential(KEY, value):
        print(f"Failed to store {KEY} in the keychain")
        return 1
    print(f"Stored {KEY} in the keychain")
    return 0


def clear() -> int:
    if not delete_credential(KEY):
        print(f"{KEY} was not removed (not stored, or keychain unavailable)")
        return 1
    print(f"Removed {KEY} from the keychain")
    return 0


def status() -> int:
    stored = get_credential(KEY) is not None
    print(f"{KEY}: {'stored' if stored else 'not stored'}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Manage the directory bind password in the OS keychain"
    )
    sub = parser.add_subparsers(dest="command", required=True)
    set_parser = sub.add_parser("set", help="Store the bind password")
    set_parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help=f"Read {KEY} from this .env file instead of prompting",
    )
    sub.add_parser("clear", help="Remove the stored bind password")
    sub.add_parser("status", help="Show whether a bind password is stored")

    args = parser.parse_args(argv)
    if args.command == "set":
        return store(args.env_file)
    if args.command == "clear":
        return clear()
    return status()


if __name__ == "__main__":
    sys.exit(main())
