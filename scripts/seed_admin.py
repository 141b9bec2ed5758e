from __future__ import annotations

import argparse
import asyncio

from threereco.core.config import BOOTSTRAP_USER_ID
from threereco.core.logging import configure_logging
from threereco.persistence.db import SessionLocal, engine
from threereco.persistence.transaction import audited_transaction
from threereco.services.bootstrap import seed_admin


def _build_parser() -> argparse.ArgumentParser:
    # Values default to ADMIN_EMAIL / ADMIN_PASSWORD / ADMIN_NAME from the environment.
    parser = argparse.ArgumentParser(description="Seed the administrator role, user and business roles")
    parser.add_argument("--email", default=None, help="Administrator email")
    parser.add_argument("--password", default=None, help="Administrator password")
    parser.add_argument("--name", default=None, help="Administrator display name")
    return parser


async def _run(args: argparse.Namespace) -> int:
    async with SessionLocal() as session:
        async with audited_transaction(session, audit_user_id=BOOTSTRAP_USER_ID) as tx:
            admin = await seed_admin(tx, email=args.email, password=args.password, name=args.name)
    await engine.dispose()
    print(f"admin_user_id={admin.id}")
    print(f"admin_email={admin.email}")
    return 0


def main() -> int:
    configure_logging()
    args = _build_parser().parse_args()
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
