import sys
from pathlib import Path

import httpx
import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from services.cache_layer import CacheLayer  # noqa: E402
from services.transaction_history import TransactionHistoryService  # noqa: E402
from utils.retry import RetryableClient, RetryConfig  # noqa: E402
from conftest import WALLET, FakeClock  # noqa: E402

HELIUS_URL = "https://api.helius.xyz/v0"
SIGNATURE = "5h6xBEauJ3PK6SWCZ1PGjBvj8vDdWG3KpwATGy1ARAXFSDwt8GFXM7W5Ncn16wmqokgpiKRLuS83KUxyZyv2sUYv"

HISTORY = [
    {
        "signature": SIGNATURE,
        "type": "SWAP",
        "timestamp": 1_700_000_000,
        "description": "wallet swapped 2 SOL for 970 SUISEI",
        "fee": 5000,
        "feePayer": WALLET,
        "source": "JUPITER",
        "tokenTransfers": [{"mint": "mint", "tokenAmount": 970}],
    }
]


def _service(handler, api_key="test-key", clock=None) -> TransactionHistoryService:
    http = RetryableClient(
        httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        RetryConfig(max_attempts=1, jitter=False),
    )
    return TransactionHistoryService(http, HELIUS_URL, api_key, CacheLayer(clock=clock or FakeClock()))


@pytest.mark.asyncio
async def test_history_is_parsed_and_cached():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=HISTORY)

    service = _service(handler)
    first = await service.get_transaction_history(WALLET, limit=5)
    second = await service.get_transaction_history(WALLET, limit=5)

    assert second is first
    assert len(requests) == 1
    assert requests[0].url.params["limit"] == "5"
    assert first[0].type == "SWAP"
    assert first[0].fee_payer == WALLET


@pytest.mark.asyncio
async def test_history_without_api_key_is_empty():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    service = _service(handler, api_key=None)
    assert await service.get_transaction_history(WALLET) == []


@pytest.mark.asyncio
async def test_history_outage_serves_expired_copy():
    clock = FakeClock()
    state = {"fail": False}

    def handler(request: httpx.Request) -> httpx.Response:
        if state["fail"]:
            return httpx.Response(500, text="boom")
        return httpx.Response(200, json=HISTORY)

    service = _service(handler, clock=clock)
    await service.get_transaction_history(WALLET)
    clock.advance(61)
    state["fail"] = True

    history = await service.get_transaction_history(WALLET)
    assert [tx.signature for tx in history] == [SIGNATURE]
    assert service.metrics.errors == 1


@pytest.mark.asyncio
async def test_parse_transaction_posts_signature():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=HISTORY)

    parsed = await _service(handler).parse_transaction(SIGNATURE)

    assert requests[0].method == "POST"
    assert b'"transactions"' in requests[0].content
    assert parsed.source == "JUPITER"
    assert parsed.token_transfers == [{"mint": "mint", "tokenAmount": 970}]


@pytest.mark.asyncio
async def test_parse_unknown_transaction_returns_none():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    assert await _service(handler).parse_transaction(SIGNATURE) is None
