"""Bootstrap a WorkTrack account from the command line.

Self-registration is not offered by the API, so the first administrator is
created here.
"""

import argparse
import getpass
import sys

from fastapi import HTTPException

from worktrack.db.session import SessionLocal
from worktrack.models.entities import UserLevel, UserRole
from worktrack.services.user_service import UserCreateData, UserService

MIN_PASSWORD_LENGTH = 8


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a WorkTrack user")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument("--admin", action="store_true", help="Grant the ADMIN role")
    parser.add_argument(
        "--level",
        choices=[level.value for level in UserLevel],
        default=UserLevel.JUNIOR.value,
        help="Seniority level (defaults to JUNIOR)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < MIN_PASSWORD_LENGTH:
            print(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    password = prompt_for_password()

    db = SessionLocal()
    try:
        user = UserService(db).create_user(
            context=None,
            data=UserCreateData(
                email=args.email,
                display_name=args.name,
                password=password,
                level=UserLevel(args.level),
                role=UserRole.ADMIN if args.admin else UserRole.USER,
            ),
        )
    except HTTPException as exc:
        print(f"Error: {exc.detail}", file=sys.stderr)
        return 1
    finally:
        db.close()

    print(f"Created {user.role.value} {user.display_name} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
