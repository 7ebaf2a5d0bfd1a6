from sqlalchemy import (
    Column,
    String,
    Integer,
    Float,
    DateTime,
    Text,
    Index,
    event,
)
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from utils.clock import utcnow

Base = declarative_base()

# The ledger is written by the signal bot and the order executor; this
# package only reads it. Mappings mirror the columns those writers use.


# ==================== SIGNALS ====================


class Signal(Base):
    """Token call received by the signal bot"""

    __tablename__ = "signals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=True)
    token_symbol = Column(String, nullable=True)
    token_contract = Column(String, nullable=True)
    entry_mc = Column(Float, nullable=True)  # Market cap when the signal fired
    status = Column(String, default="active")
    bot_session_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_signal_session_status", "bot_session_id", "status"),
        Index("idx_signal_contract", "token_contract"),
    )


# ==================== LIMIT ORDERS ====================


class LimitOrder(Base):
    """Buy order placed at a target market cap"""

    __tablename__ = "limit_orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False)
    token_symbol = Column(String, nullable=True)
    contract_address = Column(String, nullable=True)
    target_market_cap = Column(Float, nullable=True)
    amount_sol = Column(Float, nullable=True)  # Native amount spent
    status = Column(String, default="pending")  # pending, filled, cancelled
    transaction_signature = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    filled_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_order_user_status", "user_id", "status"),
        Index("idx_order_contract", "contract_address"),
    )


# ==================== AUTOMATED TRADES ====================


class AutomatedTrade(Base):
    """Trade-execution log row written by the auto trader"""

    __tablename__ = "automated_trades"

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet_id = Column(Integer, nullable=True)
    token_symbol = Column(String, nullable=True)
    token_contract = Column(String, nullable=True)
    amount_sol = Column(Float, nullable=True)
    entry_mcap = Column(Float, nullable=True)
    status = Column(String, default="pending")  # pending, completed, failed
    transaction_signature = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_trade_contract_created", "token_contract", "created_at"),
        Index("idx_trade_symbol_created", "token_symbol", "created_at"),
    )


# ==================== HIDDEN POSITIONS ====================


class HiddenPosition(Base):
    """Contract a user chose to hide, or the session-restart marker row"""

    __tablename__ = "hidden_positions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False)
    contract_address = Column(String, nullable=False)
    reason = Column(Text, nullable=True)
    hidden_at = Column(DateTime, default=utcnow)

    __table_args__ = (Index("idx_hidden_user_contract", "user_id", "contract_address"),)


# ==================== BOT SESSIONS ====================


class BotSession(Base):
    __tablename__ = "bot_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_start = Column(DateTime, default=utcnow)
    session_end = Column(DateTime, nullable=True)
    status = Column(String, default="active")


# ==================== DATABASE SETUP ====================


def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Wait instead of failing while a writer holds the SQLite lock."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


def create_ledger_engine(database_url: str) -> AsyncEngine:
    engine_kw: dict = {"echo": False}
    if "sqlite" in database_url:
        engine_kw["connect_args"] = {"timeout": 30}
        if ":memory:" in database_url:
            # One shared connection, otherwise each session sees an empty database.
            engine_kw["poolclass"] = StaticPool

    engine = create_async_engine(database_url, **engine_kw)
    if "sqlite" in database_url:
        event.listens_for(engine.sync_engine, "connect")(_set_sqlite_pragma)
    return engine


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_ledger_tables(engine: AsyncEngine) -> None:
    """Create the ledger tables if missing (local development and tests)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
