"""Tests for the command-line entry and logging setup."""

from __future__ import annotations

import json
import logging
from unittest.mock import AsyncMock, patch

import pytest

from signalhub.config import Settings
from signalhub.main import JSONFormatter, _json_safe, build_parser, configure_logging, main


def test_parser_backtest_symbol():
    args = build_parser().parse_args(["backtest", "nasdaq", "--symbol", "AAPL"])
    assert args.command == "backtest"
    assert args.market == "nasdaq"
    assert args.symbol == "AAPL"


def test_parser_rejects_unknown_market():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["scan", "forex"])


def test_json_safe_replaces_non_finite():
    out = _json_safe({"a": float("nan"), "b": [1.0, float("inf")], "c": (2, "x")})
    assert out == {"a": None, "b": [1.0, None], "c": [2, "x"]}


def test_json_formatter():
    record = logging.LogRecord("signalhub.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    payload = json.loads(JSONFormatter().format(record))
    assert payload["message"] == "hello world"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "signalhub.test"


def test_configure_logging_quiets_httpx():
    root = logging.getLogger()
    level, handlers = root.level, list(root.handlers)
    try:
        configure_logging(Settings(_env_file=None, log_level="DEBUG"))
        assert root.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        root.handlers = handlers
        root.setLevel(level)


def test_main_prints_json(capsys):
    result = {"symbol": "AAPL", "score": {"score": 70}, "ratio": float("inf")}
    with (
        patch("signalhub.main.configure_logging"),
        patch("signalhub.main.run_command", new=AsyncMock(return_value=result)) as run,
    ):
        assert main(["score", "nasdaq", "AAPL"]) == 0

    run.assert_awaited_once()
    printed = json.loads(capsys.readouterr().out)
    assert printed["score"]["score"] == 70
    assert printed["ratio"] is None
