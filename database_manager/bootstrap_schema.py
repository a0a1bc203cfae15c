from sqlalchemy.ext.asyncio import AsyncEngine

from TableModels import Base

COST_BASIS_TABLES = ("chain_transfers", "exchange_trades", "cost_basis_links")


async def ensure_cost_basis_schema(async_engine: AsyncEngine) -> None:
    """Idempotent CREATE IF NOT EXISTS for the ledger tables; runs on every startup."""
    tables = [Base.metadata.tables[name] for name in COST_BASIS_TABLES]
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, tables=tables, checkfirst=True)
