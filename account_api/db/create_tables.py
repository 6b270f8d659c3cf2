"""Create (or recreate with ``--drop``) the account schema on DATABASE_URL."""
from __future__ import annotations

import argparse

from sqlalchemy.exc import SQLAlchemyError

from .session import Base, get_engine
from . import models  # noqa: F401  # ensure models are imported for metadata


def create_all() -> None:
    Base.metadata.create_all(bind=get_engine())


def drop_all() -> None:
    Base.metadata.drop_all(bind=get_engine())


if __name__ == "__main__":
    ap = argparse.ArgumentParser(description="Create account API tables")
    ap.add_argument("--drop", action="store_true", help="drop existing tables first (destroys data)")
    args = ap.parse_args()
    try:
        if args.drop:
            drop_all()
        create_all()
        print("Database tables created successfully.")
    except SQLAlchemyError as exc:
        raise SystemExit(f"Failed to create tables: {exc}") from exc
