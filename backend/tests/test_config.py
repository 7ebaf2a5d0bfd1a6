import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

import config


def test_rpc_urls_accept_comma_separated_string_and_dedupe():
    urls = config.Settings._normalize_rpc_urls(
        " https://rpc-a.example ,'https://rpc-b.example',https://rpc-a.example,,"
    )
    assert urls == ["https://rpc-a.example", "https://rpc-b.example"]


def test_relative_ledger_path_resolves_against_project_root(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "_PROJECT_ROOT", tmp_path.resolve())

    normalized = config.Settings._normalize_ledger_url("sqlite+aiosqlite:///./data/ledger.db")

    assert normalized == f"sqlite+aiosqlite:///{(tmp_path / 'data' / 'ledger.db').resolve()}"


def test_in_memory_and_non_sqlite_ledger_urls_pass_through():
    assert config.Settings._normalize_ledger_url("sqlite+aiosqlite:///:memory:") == "sqlite+aiosqlite:///:memory:"
    assert (
        config.Settings._normalize_ledger_url("postgresql+asyncpg://bot@db/ledger")
        == "postgresql+asyncpg://bot@db/ledger"
    )


def test_url_fields_lose_quotes_and_trailing_slash():
    assert config.Settings._normalize_url_field('"https://api.dexscreener.com/latest/"') == (
        "https://api.dexscreener.com/latest"
    )


def test_settings_defaults_cover_both_token_programs():
    settings = config.Settings(_env_file=None)
    assert settings.TOKEN_PROGRAM_IDS == [config.TOKEN_PROGRAM_ID, config.TOKEN_2022_PROGRAM_ID]
    assert settings.JUPITER_SAFETY_FACTOR == 0.8
    assert settings.MIN_POSITION_VALUE_USD == 1.0
