"""Create (or recreate) every table directly from the ORM metadata."""

from __future__ import annotations

import argparse
import logging

from chorus_membership.core.logging import configure_logging
from chorus_membership.db.session import create_tables, drop_tables, make_engine

logger = logging.getLogger(__name__)


def init_db(url: str | None = None, *, drop: bool = False) -> None:
    """Initialize the database by creating all tables."""
    engine = make_engine(url)
    try:
        if drop:
            logger.warning("Dropping all tables on %s", engine.url.render_as_string(hide_password=True))
            drop_tables(engine)
        create_tables(engine)
    finally:
        engine.dispose()
    logger.info("Database initialized.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the membership tables")
    parser.add_argument(
        "--drop-tables",
        action="store_true",
        help="Drop every table before creating them again.",
    )
    parser.add_argument(
        "--url",
        default=None,
        help="Override database URL (defaults to effective settings URL)",
    )
    args = parser.parse_args()

    configure_logging()
    init_db(args.url, drop=args.drop_tables)


if __name__ == "__main__":
    main()
