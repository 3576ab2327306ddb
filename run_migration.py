import os
import sys
from pathlib import Path

import psycopg2

SCHEMA_PATH = Path(__file__).resolve().parent / "backend" / "journalflow" / "core" / "schema.sql"


def _db_settings() -> dict:
    """
    数据库连接参数全部来自环境变量（DATABASE_URL 优先）。
    """
    url = (os.environ.get("DATABASE_URL") or "").strip()
    if url:
        return {"dsn": url}
    missing = [k for k in ("DB_HOST", "DB_PASSWORD") if not os.environ.get(k)]
    if missing:
        raise RuntimeError(f"Missing database settings: {', '.join(missing)} (or set DATABASE_URL)")
    return {
        "host": os.environ["DB_HOST"],
        "dbname": os.environ.get("DB_NAME", "postgres"),
        "user": os.environ.get("DB_USER", "postgres"),
        "password": os.environ["DB_PASSWORD"],
        "port": os.environ.get("DB_PORT", "5432"),
    }


def run_migrations() -> int:
    print("Connecting to database...")
    try:
        conn = psycopg2.connect(**_db_settings())
    except Exception as e:
        print(f"Migration failed: {e}")
        return 1

    conn.autocommit = True
    try:
        with conn.cursor() as cur:
            print(f"Applying {SCHEMA_PATH.name}...")
            cur.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
        print("Database migration completed successfully!")
        return 0
    except Exception as e:
        print(f"Migration failed: {e}")
        return 1
    finally:
        conn.close()


if __name__ == "__main__":
    sys.exit(run_migrations())
