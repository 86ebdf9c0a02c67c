"""Create a freelancer (or admin) API key and print it once."""
from __future__ import annotations

import argparse

from sqlalchemy import select

from deliverhub.db import session_scope
from deliverhub.models.api_key import ApiKey, ApiScope
from deliverhub.models.user import User
from deliverhub.utils.apikey import gen_key


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("username")
    parser.add_argument("email")
    parser.add_argument("--scope", choices=[scope.value for scope in ApiScope], default=ApiScope.freelancer.value)
    args = parser.parse_args()

    with session_scope() as db:
        user = db.scalar(select(User).where(User.username == args.username))
        if user is None:
            user = User(username=args.username, email=args.email)
            db.add(user)
            db.flush()

        raw, prefix, key_hash = gen_key()
        api_key = ApiKey(
            name=f"{args.username}-{prefix}",
            prefix=prefix,
            key_hash=key_hash,
            scope=ApiScope(args.scope),
            user_id=user.id,
            is_active=True,
        )
        db.add(api_key)
        db.commit()

        print("API key created; it will not be shown again.")
        print(f"    Authorization: Bearer {raw}")
        print(f"(user id: {user.id}, key id: {api_key.id}, scope: {api_key.scope.value})")


if __name__ == "__main__":
    main()
