"""
Database connection and pool management
"""

import asyncpg
import logging
from pathlib import Path
from config import settings

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

# Global database pool
db_pool = None

async def init_database():
    """Initialize database connection pool and make sure the schema exists"""
    global db_pool
    db_pool = await asyncpg.create_pool(
        settings.DATABASE_URL,
        min_size=2,
        max_size=10,
        command_timeout=60,
        statement_cache_size=0  # Fix for pgbouncer compatibility
    )

    async with db_pool.acquire() as conn:
        await conn.fetchval("SELECT 1")
        await conn.execute(SCHEMA_PATH.read_text())

    logger.info("Database initialized successfully")


async def close_database():
    """Close database connection pool"""
    global db_pool
    if db_pool:
        await db_pool.close()
        db_pool = None
    logger.info("Database connections closed")

def get_db_pool():
    """Get the database pool instance"""
    return db_pool
