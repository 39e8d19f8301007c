#!/usr/bin/env python3
"""Create the InkSpace tables and the local storage buckets."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from inkspace import create_app, storage
from inkspace.extensions import db

BUCKETS = (storage.PORTFOLIOS, storage.BOOKING_REFERENCES, storage.MESSAGE_ATTACHMENTS)


def init_database(app=None, reset: bool = False) -> list[str]:
    """Create missing tables (dropping them first with ``reset``); return the table names."""
    app = app or create_app()
    with app.app_context():
        if reset:
            db.drop_all()
        db.create_all()
        root = app.extensions["inkspace"]["storage"].root
        for bucket in BUCKETS:
            (Path(root) / bucket).mkdir(parents=True, exist_ok=True)
        return sorted(db.metadata.tables)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--reset", action="store_true", help="drop every table before creating them")
    args = parser.parse_args()

    tables = init_database(reset=args.reset)
    print(f"Initialized {len(tables)} tables: {', '.join(tables)}")


if __name__ == "__main__":
    main()
