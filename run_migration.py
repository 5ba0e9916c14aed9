#!/usr/bin/env python3
"""Apply a SQL migration file to the database at DATABASE_URL."""
import os
import sys

import psycopg2

if len(sys.argv) < 2:
    print("Usage: python3 run_migration.py migrations/0001_training_pipeline.sql")
    sys.exit(1)

migration_file = sys.argv[1]
with open(migration_file, "r") as f:
    sql = f.read()

print(f"Migration file: {migration_file} ({len(sql)} bytes)")

database_url = os.getenv("DATABASE_URL")
if not database_url:
    print("DATABASE_URL environment variable not set")
    sys.exit(1)

try:
    conn = psycopg2.connect(database_url)
    with conn, conn.cursor() as cursor:
        cursor.execute(sql)
    conn.close()
except psycopg2.Error as e:
    print(f"Error running migration: {e}")
    sys.exit(1)

print("Migration complete")
