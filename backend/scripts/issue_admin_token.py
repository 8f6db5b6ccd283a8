#!/usr/bin/env python3
"""
Script to mint an admin bearer token for the management API.

Admin identity lives outside this service; this script signs a short-lived
JWT with the "admin" role for operators and local development.

SECURITY: This script is blocked from running in production/pilot/staging/uat.

Usage:
    python scripts/issue_admin_token.py --subject ops@example.com
    python scripts/issue_admin_token.py --subject ops@example.com --minutes 15
"""

import argparse
import os
import sys
from datetime import timedelta

# Add parent directory to path for imports when run as script
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.config import settings
from app.core.security import create_access_token

# Environments where this script must NOT run
BLOCKED_ENVIRONMENTS = {"production", "pilot", "staging", "uat"}


def check_environment() -> None:
    """Fail if running in a secure environment."""
    env = settings.ENVIRONMENT.lower()
    if env in BLOCKED_ENVIRONMENTS:
        print(
            f"ERROR: issue_admin_token.py cannot run in '{env}' environment.\n"
            f"Use your identity provider for {env} deployments.",
            file=sys.stderr,
        )
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(description="Mint an admin bearer token.")
    parser.add_argument("--subject", required=True, help="Admin identity written to the sub claim")
    parser.add_argument(
        "--minutes",
        type=int,
        default=settings.ADMIN_TOKEN_EXPIRE_MINUTES,
        help=f"Token lifetime (default: {settings.ADMIN_TOKEN_EXPIRE_MINUTES})",
    )
    args = parser.parse_args()

    check_environment()

    token = create_access_token(args.subject, expires_delta=timedelta(minutes=args.minutes))
    print(token)


if __name__ == "__main__":
    main()
