"""Grant (or revoke) the admin role for an existing user.

Connection settings come from the ``CANOPY_*`` environment variables.

Usage:
    uv run python scripts/set_admin.py alice@example.com
    uv run python scripts/set_admin.py alice@example.com --revoke
"""

from __future__ import annotations

import argparse
import sys

from canopy import Canopy, CanopySettings, Principal, Role

# Acting identity for role changes made from the command line.
OPERATOR_ID = "canopy-cli"


def main() -> None:
    parser = argparse.ArgumentParser(description="Set a user's role")
    parser.add_argument("email", help="email of an existing user")
    parser.add_argument("--revoke", action="store_true", help="demote to a regular user")
    args = parser.parse_args()

    settings = CanopySettings.from_env()
    role = Role.USER if args.revoke else Role.ADMIN

    with Canopy.from_settings(settings) as canopy:
        user = canopy.get_user_by_email(args.email)
        if user is None:
            print(f"error: no user with email {args.email!r}", file=sys.stderr)
            sys.exit(1)
        updated = canopy.set_role(Principal.admin(OPERATOR_ID), user.id, role)

    print(f"{updated.name} ({updated.email}) is now {updated.role}")
    print(f"  user id: {updated.id}")


if __name__ == "__main__":
    main()
