from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

# Get the directory where this config file is located.
_BACKEND_DIR = Path(__file__).parent.resolve()
_PROJECT_ROOT = _BACKEND_DIR.parent.resolve()
_DEFAULT_LEDGER_PATH = (_PROJECT_ROOT / "data" / "alphabot_signals.db").resolve()
_SQLITE_ASYNC_PREFIX = "sqlite+aiosqlite:///"

# SPL Token program and Token-2022 program
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"


class Settings(BaseSettings):
    # Solana RPC endpoints, tried in order by the connection pool
    SOLANA_RPC_URLS: list[str] = [
        "https://api.mainnet-beta.solana.com",
        "https://solana-rpc.publicnode.com",
        "https://rpc.ankr.com/solana",
    ]
    RPC_TIMEOUT_SECONDS: float = 10.0
    RPC_HEALTH_TTL_SECONDS: float = 10.0  # Reuse a handle probed within this window
    TOKEN_PROGRAM_IDS: list[str] = [TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID]

    # Market data providers
    JUPITER_PRICE_URL: str = "https://lite-api.jup.ag/price/v2"
    DEXSCREENER_API_URL: str = "https://api.dexscreener.com/latest"
    HELIUS_API_URL: str = "https://api.helius.xyz/v0"
    HELIUS_API_KEY: Optional[str] = None
    API_TIMEOUT_SECONDS: float = 10.0
    MAX_RETRY_ATTEMPTS: int = 2
    RETRY_BASE_DELAY: float = 0.5

    # Provider rate limits
    JUPITER_MAX_REQUESTS_PER_MINUTE: int = 600
    JUPITER_SAFETY_FACTOR: float = 0.8  # Only use 80% of the published limit
    JUPITER_MIN_INTERVAL_MS: int = 200
    DEXSCREENER_MIN_INTERVAL_SECONDS: float = 1.0

    # Cache lifetimes (seconds)
    CACHE_TTL_MARKET_DATA: float = 30.0
    CACHE_TTL_WALLET_BALANCE: float = 15.0
    CACHE_TTL_TOKEN_INFO: float = 60.0
    CACHE_TTL_POSITIONS: float = 20.0
    CACHE_TTL_PNL: float = 10.0

    # Position valuation
    MIN_POSITION_VALUE_USD: float = 1.0  # Hide dust below this value
    NATIVE_USD_RATE: float = 150.0  # SOL -> USD for ledger-only order estimates
    PROFIT_TAKING_THRESHOLDS: dict[str, float] = {
        "conservative": 2.0,
        "moderate": 3.0,
        "aggressive": 5.0,
    }
    DEFAULT_PROFIT_TAKING_THRESHOLD: float = 2.0
    KNOWN_TOKEN_SYMBOLS: dict[str, str] = {
        "So11111111111111111111111111111111111111112": "SOL",
        "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v": "USDC",
        "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB": "USDT",
        "8vtRhUm7mrU6jg9YG19Qc8UEhRbMwTXwNQ52xizpump": "SUISEI",
        "e197o6pDWSuEYGG7CGBbvde4C9L26GQm47QLgXHpump": "LEM",
    }

    # Ledger
    LEDGER_DATABASE_URL: str = f"{_SQLITE_ASYNC_PREFIX}{_DEFAULT_LEDGER_PATH}"
    SESSION_RESTART_USER_ID: str = "auto-session-restart"
    SESSION_RESTART_CONTRACT: str = "ALL_EXISTING_POSITIONS"
    SESSION_HIDDEN_USER_ID: str = "auto-session"
    BOT_SESSION_CACHE_SECONDS: float = 300.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    @field_validator(
        "JUPITER_PRICE_URL",
        "DEXSCREENER_API_URL",
        "HELIUS_API_URL",
        mode="before",
    )
    @classmethod
    def _normalize_url_field(cls, value: object) -> object:
        """Trim accidental quotes/whitespace from URL env vars."""
        if value is None:
            return value
        text = str(value).strip().strip('"').strip("'")
        return text.rstrip("/")

    @field_validator("SOLANA_RPC_URLS", mode="before")
    @classmethod
    def _normalize_rpc_urls(cls, value: object) -> object:
        """Accept a comma-separated string and drop duplicates, keeping order."""
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple)):
            return value
        urls: list[str] = []
        for raw_url in value:
            url = str(raw_url or "").strip().strip('"').strip("'")
            if url and url not in urls:
                urls.append(url)
        return urls

    @field_validator("LEDGER_DATABASE_URL", mode="before")
    @classmethod
    def _normalize_ledger_url(cls, value: object) -> object:
        """Resolve relative SQLite paths against the project root."""
        if value is None:
            return value
        text = str(value).strip().strip('"').strip("'")
        if not text.startswith(_SQLITE_ASYNC_PREFIX):
            return text
        path_part = text[len(_SQLITE_ASYNC_PREFIX) :]
        if not path_part:
            return text
        if path_part in {":memory:", "/:memory:"}:
            return f"{_SQLITE_ASYNC_PREFIX}:memory:"
        absolute = Path(path_part).resolve() if path_part.startswith("/") else (_PROJECT_ROOT / path_part).resolve()
        return f"{_SQLITE_ASYNC_PREFIX}{absolute}"

    class Config:
        # Load project-root .env first, then backend/.env as an override.
        env_file = (
            str(_PROJECT_ROOT / ".env"),
            str(_BACKEND_DIR / ".env"),
        )
        env_file_encoding = "utf-8"


settings = Settings()
