"""
Secret management for the inspection backend API.

Usage:
    from src.config.secrets import get_api_token, get_api_base_url

    # Will raise if the token is missing
    token = get_api_token()

CLI check:
    python -m src.config.secrets --check
"""

import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Find .env file - walk up from this file to repo root
_current = Path(__file__).resolve()
_repo_root = _current.parent.parent.parent  # src/config/secrets.py -> repo root
_env_path = _repo_root / ".env"

if _env_path.exists():
    load_dotenv(_env_path)
else:
    # Also try current working directory
    load_dotenv()


TOKEN_ENV_VAR = "WHEEL_API_TOKEN"
BASE_URL_ENV_VAR = "WHEEL_API_BASE_URL"


class MissingAPITokenError(Exception):
    """Raised when the backend API token is not configured."""
    pass


def get_api_token() -> str:
    """
    Get the backend bearer token from environment.

    Returns:
        str: The token

    Raises:
        MissingAPITokenError: If WHEEL_API_TOKEN is not set
    """
    token = os.environ.get(TOKEN_ENV_VAR, "").strip()
    if not token:
        raise MissingAPITokenError(
            f"{TOKEN_ENV_VAR} not found. "
            "Copy .env.example to .env and add your token."
        )
    return token


def get_optional_api_token() -> Optional[str]:
    """Return the bearer token, or None when the backend is used anonymously."""
    token = os.environ.get(TOKEN_ENV_VAR, "").strip()
    return token or None


def get_api_base_url() -> Optional[str]:
    """Return the backend base URL override from the environment, if any."""
    url = os.environ.get(BASE_URL_ENV_VAR, "").strip()
    return url.rstrip("/") or None


def check_keys() -> dict:
    """
    Check which settings are configured.

    Returns:
        dict: Status of each variable ("OK" or "MISSING")
    """
    return {
        TOKEN_ENV_VAR: "OK" if get_optional_api_token() else "MISSING",
        BASE_URL_ENV_VAR: "OK" if get_api_base_url() else "MISSING",
    }


def _cli_check():
    """CLI entry point for --check flag."""
    status = check_keys()

    for key_name, key_status in status.items():
        print(f"{key_name}: {key_status}")

    if status[TOKEN_ENV_VAR] == "MISSING":
        print("\nTo configure the token:")
        print("  1. Copy .env.example to .env")
        print(f"  2. Set {TOKEN_ENV_VAR} in .env")
        sys.exit(1)
    else:
        print("\nToken configured.")
        sys.exit(0)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(
        description="Check backend API configuration"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check if the API token is configured"
    )

    args = parser.parse_args()

    if args.check:
        _cli_check()
    else:
        parser.print_help()
