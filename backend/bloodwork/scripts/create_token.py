"""Issue a personal API token for a user from the command line.

Bootstraps access for a fresh install: creates the user record if needed
and prints the token once.

Usage:
    python -m bloodwork.scripts.create_token alice --email alice@example.org
"""

import argparse
import sys
from pathlib import Path

from bloodwork.config import settings
from bloodwork.schemas.user import MAX_TOKENS_PER_USER
from bloodwork.services.file_store import FileStore


def create_token(store: FileStore, user_id: str, name: str, display_name: str = "", email: str = "") -> str:
    """Ensure the user exists and return a new plaintext token.

    Raises:
        ValueError: If the user already holds the maximum number of tokens.
    """
    data = store.ensure_user_profile(user_id, display_name or user_id, email)
    if len(data.api_tokens) >= MAX_TOKENS_PER_USER:
        raise ValueError(f"User {user_id} already has {MAX_TOKENS_PER_USER} tokens")
    _, secret = store.issue_api_token(user_id, name)
    return secret


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create a personal API token")
    parser.add_argument("user_id", help="User id (created if it does not exist)")
    parser.add_argument("--name", default="cli", help="Token label (default: cli)")
    parser.add_argument("--display-name", default="", help="Display name for a new user")
    parser.add_argument("--email", default="", help="Email for a new user (needed for shares)")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path(settings.data_dir),
        help=f"Data directory (default: {settings.data_dir})",
    )
    args = parser.parse_args(argv)

    store = FileStore(args.data_dir)
    try:
        secret = create_token(store, args.user_id, args.name, args.display_name, args.email)
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1

    print(f"  Token for {args.user_id} (shown once):")
    print(f"  {secret}")
    if args.user_id in settings.admin_ids:
        print("  This user is an admin.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
