"""Database setup and initialization"""
import logging
from pathlib import Path
from typing import List, Optional

from flow_oracle.database.connection import DatabaseConnection
from flow_oracle.database.queries import PRICE_TABLE, SNAPSHOT_TABLE

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent.parent.parent / "migrations"
REQUIRED_TABLES = [PRICE_TABLE, SNAPSHOT_TABLE]


def split_statements(sql_content: str) -> List[str]:
    """Split a migration file into statements, dropping comment-only chunks"""
    statements = []
    for chunk in sql_content.split(';'):
        lines = [line for line in chunk.splitlines() if not line.strip().startswith('--')]
        statement = '\n'.join(lines).strip()
        if statement:
            statements.append(statement)
    return statements


def run_migration_file(conn, migration_file: Path):
    """Run a SQL migration file"""
    logger.info(f"Running migration: {migration_file.name}")

    with open(migration_file, 'r') as f:
        statements = split_statements(f.read())

    with conn.cursor() as cur:
        for statement in statements:
            cur.execute(statement)
    conn.commit()
    logger.info(f"Migration {migration_file.name} completed")


def setup_database(db: DatabaseConnection, migrations_dir: Optional[Path] = None):
    """Apply every migration in order"""
    migrations_dir = migrations_dir or MIGRATIONS_DIR
    migration_files = sorted(migrations_dir.glob("*.sql"))
    if not migration_files:
        raise FileNotFoundError(f"No migration files found in {migrations_dir}")

    conn = db.get_connection()
    try:
        for migration_file in migration_files:
            run_migration_file(conn, migration_file)
        logger.info("Database setup completed successfully")
    except Exception as e:
        conn.rollback()
        logger.error(f"Database setup failed: {e}")
        raise
    finally:
        db.return_connection(conn)


def verify_setup(db: DatabaseConnection) -> bool:
    """Verify the required tables exist"""
    logger.info("Verifying database setup...")

    conn = db.get_connection()
    try:
        with conn.cursor() as cur:
            cur.execute("""
                SELECT table_name
                FROM information_schema.tables
                WHERE table_schema = 'public'
                AND table_name = ANY(%s)
                ORDER BY table_name
            """, (REQUIRED_TABLES,))
            tables = [row[0] for row in cur.fetchall()]

            missing = set(REQUIRED_TABLES) - set(tables)
            if missing:
                logger.error(f"Missing tables: {sorted(missing)}")
                return False

            logger.info(f"All required tables exist: {tables}")
            return True
    finally:
        db.return_connection(conn)
