import io
import json
import logging
import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from utils.logger import get_logger, setup_logging  # noqa: E402


def _capture(json_format: bool) -> io.StringIO:
    stream = io.StringIO()
    setup_logging(level="DEBUG", json_format=json_format, stream=stream)
    return stream


def test_json_lines_carry_bound_context_and_fields():
    stream = _capture(json_format=True)
    try:
        get_logger("rpc_pool").bind(endpoint="https://rpc-a.example").warning(
            "RPC health probe failed", error="timeout"
        )
        line = json.loads(stream.getvalue().strip().splitlines()[-1])
    finally:
        logging.getLogger().handlers = []

    assert line["level"] == "WARNING"
    assert line["logger"] == "rpc_pool"
    assert line["message"] == "RPC health probe failed"
    assert line["data"] == {"endpoint": "https://rpc-a.example", "error": "timeout"}


def test_key_value_format_appends_fields():
    stream = _capture(json_format=False)
    try:
        get_logger("market_data").info("Market data fetched", provider="jupiter", price=0.1)
        output = stream.getvalue()
    finally:
        logging.getLogger().handlers = []

    assert "[INFO] market_data: Market data fetched | provider=jupiter price=0.1" in output


def test_messages_below_level_are_dropped():
    stream = io.StringIO()
    setup_logging(level="WARNING", json_format=True, stream=stream)
    try:
        get_logger("cache_layer").debug("Cache miss", key="x")
    finally:
        logging.getLogger().handlers = []

    assert stream.getvalue() == ""
