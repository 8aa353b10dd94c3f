"""
Database migrations run at startup after create_all.

create_all creates missing tables but never alters existing ones, so constraints and
indexes added later live here. Every statement is idempotent. PostgreSQL only: the
SQLite test database gets everything it needs from create_all.
"""
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from reach.core.logging import get_logger

logger = get_logger(__name__)


async def run_migration_001(conn: AsyncConnection) -> None:
    """Non-negative balance constraints on wallets created before the model had them."""
    await conn.execute(text("""
        DO $$ BEGIN
            ALTER TABLE wallets
                ADD CONSTRAINT ck_wallets_available_non_negative CHECK (available_balance >= 0);
        EXCEPTION
            WHEN duplicate_object THEN null;
        END $$;
    """))
    await conn.execute(text("""
        DO $$ BEGIN
            ALTER TABLE wallets
                ADD CONSTRAINT ck_wallets_locked_non_negative CHECK (locked_balance >= 0);
        EXCEPTION
            WHEN duplicate_object THEN null;
        END $$;
    """))


async def run_migration_002(conn: AsyncConnection) -> None:
    """Indexes for the limit sums, the stale-deposit sweep and the activity feed."""
    # daily/monthly withdrawal sums
    await conn.execute(text("""
        CREATE INDEX IF NOT EXISTS idx_wallet_transactions_user_category_created
        ON wallet_transactions(user_id, category, created_at DESC);
    """))
    # partial index: only pending deposits are swept
    await conn.execute(text("""
        CREATE INDEX IF NOT EXISTS idx_wallet_transactions_pending_deposits
        ON wallet_transactions(user_id, created_at)
        WHERE category = 'deposit' AND status = 'pending';
    """))
    await conn.execute(text("""
        CREATE INDEX IF NOT EXISTS idx_wallet_activity_logs_wallet_created
        ON wallet_activity_logs(wallet_id, created_at DESC);
    """))
    await conn.execute(text("""
        CREATE INDEX IF NOT EXISTS idx_tracking_links_active_expiry
        ON tracking_links(expires_at) WHERE status = 'active';
    """))


async def run_migration_003(conn: AsyncConnection) -> None:
    """Seed withdrawal limits for wallet-owning user types when the table is empty."""
    await conn.execute(text("""
        DO $$
        BEGIN
            IF NOT EXISTS (SELECT 1 FROM withdrawal_limits) THEN
                INSERT INTO withdrawal_limits (user_type, min_amount, per_transaction, daily, monthly, updated_at)
                VALUES
                    ('developer', 1000, 5000000, 10000000, 50000000, NOW()),
                    ('creator', 1000, 5000000, 10000000, 50000000, NOW()),
                    ('buyer', 1000, 5000000, 10000000, 50000000, NOW());
            END IF;
        END $$;
    """))


async def run_all_migrations(conn: AsyncConnection) -> None:
    logger.info("Running migration 001...")
    await run_migration_001(conn)
    logger.info("Running migration 002...")
    await run_migration_002(conn)
    logger.info("Running migration 003...")
    await run_migration_003(conn)
