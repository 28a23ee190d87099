"""Print a bearer token for an existing user, for local development.

Usage:
    python -m hospital_api.issue_token someone@example.com [--minutes 120]
"""
import argparse
import sys

from sqlalchemy import func

from hospital_api.auth.jwt_handler import create_access_token
from hospital_api.database import SessionLocal
from hospital_api.models.user import User


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("email")
    parser.add_argument("--minutes", type=int, default=None, help="token lifetime (defaults to JWT_EXPIRES_MINUTES)")
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        user = db.query(User).filter(func.lower(User.email) == args.email.strip().lower()).first()
    finally:
        db.close()

    if user is None:
        print(f"No user with email {args.email}", file=sys.stderr)
        sys.exit(1)
    print(create_access_token(subject=user.email, role=user.role, expires_minutes=args.minutes))


if __name__ == "__main__":
    main()
