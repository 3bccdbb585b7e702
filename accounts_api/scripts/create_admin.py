"""
Create an account from the command line (e.g. the first admin). Run from project root:
  python -m accounts_api.scripts.create_admin EMAIL USERNAME [--role admin]
The password is prompted for unless --password is given.
"""
import argparse
import asyncio
import getpass
import sys

from accounts_api.auth.store import CredentialStore
from accounts_api.core.config import get_settings
from accounts_api.core.database import Database
from accounts_api.core.errors import ServiceError
from accounts_api.models.user import UserRole


async def create_account(args: argparse.Namespace, password: str) -> int:
    settings = get_settings()
    database = Database(settings.database_url)
    try:
        await database.create_all()
        async with database.session() as session:
            store = CredentialStore(session, settings)
            try:
                user = await store.create_user(
                    {
                        "firstName": args.first_name,
                        "lastName": args.last_name,
                        "email": args.email,
                        "username": args.username,
                        "password": password,
                        "passwordConfirm": password,
                    },
                    role=UserRole(args.role),
                )
            except ServiceError as e:
                print(e.message, file=sys.stderr)
                return 1
            await store.admin_update(user, {"email_verified": True})
        print(f"Created user '{user.username}' <{user.email}> with role '{args.role}'.")
        return 0
    finally:
        await database.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Create an account without going through signup.")
    parser.add_argument("email")
    parser.add_argument("username", help="3-30 characters: letters, digits, _ and -")
    parser.add_argument("--password", help="Prompted for when omitted")
    parser.add_argument("--role", default="admin", choices=[r.value for r in UserRole])
    parser.add_argument("--first-name", default="Admin")
    parser.add_argument("--last-name", default="User")
    args = parser.parse_args()

    password = args.password or getpass.getpass("Password: ")
    return asyncio.run(create_account(args, password))


if __name__ == "__main__":
    sys.exit(main())
