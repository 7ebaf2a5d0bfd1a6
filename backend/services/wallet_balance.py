"""
Wallet balance reads through the RPC connection pool.

Native SOL balance and token accounts (one request per token program) are
fetched concurrently on one pool handle. Balances are summed per mint and
zero balances dropped. A failed call marks the handle failed and the read is
retried on the next endpoint, at most once per endpoint.
"""

import asyncio
from typing import Mapping, Optional, Sequence

from models.wallet import WalletBalance, WalletHolding
from services.cache_layer import CacheLayer, DataClass
from services.errors import PortfolioError, RpcError, exception_text
from services.metrics import ServiceMetrics
from services.rpc_pool import ConnectionPool
from services.solana_rpc import LAMPORTS_PER_SOL, SolanaRpcClient
from utils.clock import elapsed_ms, monotonic
from utils.logger import get_logger

logger = get_logger("wallet_balance")


def _parse_token_account(account: dict) -> Optional[tuple[str, float, int]]:
    """Return (mint, ui balance, decimals) from a jsonParsed token account."""
    try:
        info = account["account"]["data"]["parsed"]["info"]
        mint = info["mint"]
        token_amount = info["tokenAmount"]
    except (KeyError, TypeError):
        return None

    decimals = int(token_amount.get("decimals") or 0)
    ui_amount = token_amount.get("uiAmount")
    if ui_amount is None:
        try:
            ui_amount = int(token_amount.get("amount") or 0) / (10**decimals)
        except (TypeError, ValueError):
            ui_amount = 0.0
    return mint, float(ui_amount), decimals


def aggregate_holdings(
    owner: str,
    accounts: Sequence[dict],
    known_symbols: Mapping[str, str],
) -> list[WalletHolding]:
    totals: dict[str, list] = {}  # mint -> [balance, decimals, account_count]
    for account in accounts:
        parsed = _parse_token_account(account)
        if parsed is None:
            continue
        mint, balance, decimals = parsed
        entry = totals.setdefault(mint, [0.0, decimals, 0])
        entry[0] += balance
        entry[2] += 1

    return [
        WalletHolding(
            mint=mint,
            symbol=known_symbols.get(mint, "UNKNOWN"),
            balance=balance,
            decimals=decimals,
            owner=owner,
            account_count=count,
        )
        for mint, (balance, decimals, count) in totals.items()
        if balance > 0
    ]


class WalletBalanceAggregator:
    def __init__(
        self,
        pool: ConnectionPool,
        cache: CacheLayer,
        token_program_ids: Sequence[str],
        known_symbols: Optional[Mapping[str, str]] = None,
        metrics: Optional[ServiceMetrics] = None,
    ):
        self.pool = pool
        self.cache = cache
        self.token_program_ids = list(token_program_ids)
        self.known_symbols = dict(known_symbols or {})
        self.metrics = metrics or ServiceMetrics()

    async def get_wallet_balance(self, address: str, force_refresh: bool = False) -> WalletBalance:
        if not force_refresh:
            cached = self.cache.get(address, DataClass.WALLET_BALANCE)
            if cached is not None:
                return cached

        try:
            balance = await self._read_with_failover(address)
        except PortfolioError as e:
            self.metrics.record_error()
            lookup = self.cache.get_stale(address, DataClass.WALLET_BALANCE)
            logger.error(
                "Wallet balance read failed",
                address=address,
                error_type=type(e).__name__,
                error=exception_text(e),
                served_stale=lookup is not None,
            )
            if lookup is not None:
                return lookup.payload.model_copy(update={"stale": True})
            raise

        self.cache.set(address, balance, DataClass.WALLET_BALANCE)
        logger.info(
            "Wallet balance fetched",
            address=address,
            tokens=balance.token_count,
            native_balance=balance.native_balance,
            endpoint=balance.endpoint,
        )
        return balance

    async def _read_with_failover(self, address: str) -> WalletBalance:
        last_error: Optional[Exception] = None
        for _ in range(len(self.pool.endpoints)):
            handle = await self.pool.acquire()
            started = monotonic()
            try:
                balance = await self._read(handle, address)
            except RpcError as e:
                last_error = e
                self.metrics.record_call(elapsed_ms(started), success=False)
                logger.warning(
                    "Wallet RPC call failed, rotating endpoint",
                    address=address,
                    endpoint=handle.endpoint,
                    error=exception_text(e),
                )
                self.pool.mark_failed(handle)
                continue

            self.metrics.record_call(elapsed_ms(started))
            return balance

        raise last_error

    async def _read(self, handle: SolanaRpcClient, address: str) -> WalletBalance:
        lamports, *account_lists = await asyncio.gather(
            handle.get_balance(address),
            *(
                handle.get_token_accounts_by_owner(address, program_id)
                for program_id in self.token_program_ids
            ),
        )
        accounts = [account for accounts in account_lists for account in accounts]
        return WalletBalance(
            address=address,
            native_balance=lamports / LAMPORTS_PER_SOL,
            holdings=aggregate_holdings(address, accounts, self.known_symbols),
            endpoint=handle.endpoint,
        )
