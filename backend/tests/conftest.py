"""Shared fixtures and fakes for the position engine tests."""

import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

import pytest
import pytest_asyncio

from models.database import create_ledger_engine, create_ledger_tables, create_session_factory
from models.market_data import MarketDataRecord
from services.cache_layer import CacheLayer
from services.errors import ProviderError, RpcError
from services.ledger import SqlLedgerReader

WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
MINT_A = "8vtRhUm7mrU6jg9YG19Qc8UEhRbMwTXwNQ52xizpump"
MINT_B = "e197o6pDWSuEYGG7CGBbvde4C9L26GQm47QLgXHpump"
MINT_C = "CCCCcccc1111222233334444555566667777pump"


class FakeClock:
    """Monotonic clock the test moves by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def token_account(mint: str, ui_amount, decimals: int = 6, amount: str = None) -> dict:
    """A jsonParsed getTokenAccountsByOwner entry."""
    token_amount = {"uiAmount": ui_amount, "decimals": decimals}
    if amount is not None:
        token_amount["amount"] = amount
    return {
        "pubkey": f"acct-{mint[:6]}",
        "account": {
            "data": {
                "parsed": {"info": {"mint": mint, "tokenAmount": token_amount}, "type": "account"},
                "program": "spl-token",
            }
        },
    }


class FakeRpcClient:
    """Stands in for SolanaRpcClient; ``healthy`` and ``fail_calls`` drive failures."""

    def __init__(
        self,
        endpoint: str,
        healthy: bool = True,
        lamports: int = 0,
        accounts: dict = None,
        supply: float = None,
        fail_calls: bool = False,
    ):
        self.endpoint = endpoint
        self.healthy = healthy
        self.lamports = lamports
        self.accounts = accounts or {}
        self.supply = supply
        self.fail_calls = fail_calls
        self.probes = 0
        self.calls = 0
        self.closed = False

    async def get_latest_blockhash(self) -> str:
        self.probes += 1
        if not self.healthy:
            raise RpcError("connection refused", endpoint=self.endpoint)
        return "9sHcv6xwn9YkB8nxTUGKDwPwNnmqVp5oAXxU8Fdkm4J6"

    def _call(self):
        self.calls += 1
        if self.fail_calls:
            raise RpcError("node is behind", endpoint=self.endpoint, code=-32005)

    async def get_balance(self, address: str) -> int:
        self._call()
        return self.lamports

    async def get_token_accounts_by_owner(self, owner: str, program_id: str) -> list:
        self._call()
        return list(self.accounts.get(program_id, []))

    async def get_token_supply(self, mint: str) -> float:
        self._call()
        if self.supply is None:
            raise RpcError("could not find mint", endpoint=self.endpoint)
        return self.supply

    async def aclose(self) -> None:
        self.closed = True


class FakeSource:
    """Market data source returning a fixed record or raising."""

    def __init__(self, name: str, record: MarketDataRecord = None, error: Exception = None):
        self.name = name
        self.record = record
        self.error = error
        self.calls = 0

    async def fetch(self, contract_address: str):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.record


def market_record(contract: str = MINT_A, **overrides) -> MarketDataRecord:
    fields = {
        "contract_address": contract,
        "symbol": "SUISEI",
        "price": 0.1,
        "market_cap": 97_000.0,
        "liquidity": 25_000.0,
        "source": "dexscreener",
    }
    fields.update(overrides)
    return MarketDataRecord(**fields)


def provider_error(name: str = "jupiter") -> ProviderError:
    return ProviderError(name, "503 Service Unavailable")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return CacheLayer(clock=clock)


@pytest_asyncio.fixture
async def ledger_session_factory():
    engine = create_ledger_engine("sqlite+aiosqlite:///:memory:")
    await create_ledger_tables(engine)
    try:
        yield create_session_factory(engine)
    finally:
        await engine.dispose()


@pytest.fixture
def ledger_reader(ledger_session_factory):
    return SqlLedgerReader(ledger_session_factory)


async def add_rows(session_factory, *rows) -> None:
    async with session_factory() as session:
        session.add_all(rows)
        await session.commit()
