#!/usr/bin/env python3
"""Check the Supabase schema against the SQL migrations.

supabase-py cannot execute raw SQL, so this script reports which
marketplace tables are missing and points at the migration files to paste
into the Supabase SQL editor.
"""

import os
import sys
from pathlib import Path

from supabase import create_client

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

REQUIRED_TABLES = (
    "jobs",
    "proposals",
    "project_trackings",
    "project_history",
    "project_messages",
    "notifications",
    "pro_profiles",
)


def migration_files(directory: Path = MIGRATIONS_DIR) -> list[Path]:
    """SQL migrations in the order they must be applied."""
    return sorted(directory.glob("*.sql"))


def split_statements(sql: str) -> list[str]:
    """Split a migration into statements, keeping $$-quoted function bodies whole."""
    statements = []
    current = []
    in_body = False
    for line in sql.splitlines():
        stripped = line.strip()
        if not in_body and (not stripped or stripped.startswith("--")):
            continue
        current.append(line)
        if stripped.count("$$") % 2 == 1:
            in_body = not in_body
        if not in_body and stripped.endswith(";"):
            statements.append("\n".join(current).strip())
            current = []
    return statements


def missing_tables(client) -> list[str]:
    """Required tables that PostgREST does not know about."""
    missing = []
    for table in REQUIRED_TABLES:
        try:
            client.table(table).select("*").limit(1).execute()
        except Exception as e:
            if "does not exist" in str(e) or "relation" in str(e) or "PGRST205" in str(e):
                missing.append(table)
            else:
                raise
    return missing


def main() -> int:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_SECRET_KEY") or os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
    if not url or not key:
        print("Set SUPABASE_URL and SUPABASE_SECRET_KEY first.")
        return 1

    for path in migration_files():
        print(f"{path.name}: {len(split_statements(path.read_text()))} statements")

    print("Connecting to Supabase...")
    missing = missing_tables(create_client(url, key))
    if not missing:
        print("All marketplace tables exist.")
        return 0

    print(f"Missing tables: {', '.join(missing)}")
    print("Run the migrations above in the Supabase SQL editor, in order.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
