#!/usr/bin/env python3
"""Alembic bootstrap for databases created with Base.metadata.create_all().

If business tables already exist but alembic_version is missing, stamp
the baseline revision before normal upgrades.
"""

from __future__ import annotations

import os
import subprocess

from sqlalchemy import inspect

from mes_api.database import engine


BASELINE_REVISION = os.getenv("ALEMBIC_BASELINE_REVISION", "001")
BUSINESS_TABLES = ("teams", "orders", "work_order_operations")


def needs_baseline_stamp(*, has_alembic_version: bool, existing_tables: set[str]) -> bool:
    return not has_alembic_version and any(table in existing_tables for table in BUSINESS_TABLES)


def main() -> int:
    inspector = inspect(engine)
    existing_tables = {table for table in BUSINESS_TABLES if inspector.has_table(table)}

    if needs_baseline_stamp(
        has_alembic_version=inspector.has_table("alembic_version"),
        existing_tables=existing_tables,
    ):
        print(
            "Existing schema detected without alembic_version. "
            f"Stamping baseline: {BASELINE_REVISION}"
        )
        subprocess.run(["alembic", "stamp", BASELINE_REVISION], check=True)
    else:
        print("Alembic bootstrap check: no baseline stamp required")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
