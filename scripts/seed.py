"""Seed a freelancer, an API key, a project and two milestones for local use."""
from __future__ import annotations

from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

from deliverhub import models  # noqa: E402
from deliverhub.config import get_settings  # noqa: E402
from deliverhub.db import create_all, init_engine, session_scope  # noqa: E402
from deliverhub.utils.apikey import gen_client_token, gen_key  # noqa: E402


def main() -> None:
    settings = get_settings()
    print(f"Using database: {settings.database_url}")

    init_engine()
    create_all()

    with session_scope() as session:
        alice = models.User(username="alice", email="alice@example.com")
        session.add(alice)
        session.flush()

        raw, prefix, key_hash = gen_key()
        session.add(
            models.ApiKey(
                name=f"alice-{prefix}",
                prefix=prefix,
                key_hash=key_hash,
                scope=models.ApiScope.freelancer,
                user_id=alice.id,
            )
        )

        project = models.Project(
            owner_id=alice.id,
            name="Brand refresh",
            client_email="client@example.com",
            client_access_token=gen_client_token(),
        )
        session.add(project)
        session.flush()
        session.add_all(
            [
                models.Milestone(project_id=project.id, title="Logo concepts", price=Decimal("400.00")),
                models.Milestone(
                    project_id=project.id,
                    title="Final artwork",
                    price=Decimal("900.00"),
                    watermark_text="DRAFT - Brand refresh",
                ),
            ]
        )
        session.commit()
        print("Seed data inserted.")
        print(f"Freelancer key:      Authorization: Bearer {raw}")
        print(f"Client access token: X-Client-Token: {project.client_access_token}")


if __name__ == "__main__":
    main()
