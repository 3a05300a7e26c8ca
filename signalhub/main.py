"""Command-line entry — score, scan or backtest a market, or serve the API.

    python -m signalhub.main score crypto BTC
    python -m signalhub.main scan aex
    python -m signalhub.main backtest nasdaq [--symbol AAPL]
    python -m signalhub.main serve [--port 8000]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import math
import os
import sys

from signalhub.config import Settings, get_settings
from signalhub.markets import MARKETS

logger = logging.getLogger(__name__)

TEXT_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log drains."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    if settings.log_format == "json":
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        logging.basicConfig(level=level, handlers=[handler], force=True)
    else:
        logging.basicConfig(level=level, format=TEXT_FORMAT, force=True)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _json_safe(obj):
    """Recursively replace NaN/inf floats so the output is strict JSON."""
    if isinstance(obj, dict):
        return {k: _json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_json_safe(v) for v in obj]
    if isinstance(obj, float) and not math.isfinite(obj):
        return None
    return obj


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="signalhub", description=__doc__.splitlines()[0])
    sub = parser.add_subparsers(dest="command", required=True)

    markets = sorted(MARKETS)

    p_score = sub.add_parser("score", help="Current indicators and score for one symbol")
    p_score.add_argument("market", choices=markets)
    p_score.add_argument("symbol")

    p_scan = sub.add_parser("scan", help="Current score for every asset of a market")
    p_scan.add_argument("market", choices=markets)

    p_bt = sub.add_parser("backtest", help="Replay signals over history")
    p_bt.add_argument("market", choices=markets)
    p_bt.add_argument("--symbol", help="Backtest a single symbol instead of the whole market")

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="0.0.0.0")
    p_serve.add_argument("--port", type=int, default=int(os.environ.get("PORT", 8000)))
    return parser


async def run_command(args: argparse.Namespace) -> dict:
    from signalhub.service import SignalService

    service = SignalService()
    try:
        if args.command == "score":
            return await service.score_symbol(args.market, args.symbol)
        if args.command == "scan":
            return await service.scan_market(args.market)
        if args.symbol:
            return await service.backtest_symbol(args.market, args.symbol)
        return await service.backtest_market(args.market)
    finally:
        await service.close()


def serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("api.app:app", host=host, port=port, log_level="info")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    if args.command == "serve":
        serve(args.host, args.port)
        return 0

    result = asyncio.run(run_command(args))
    json.dump(_json_safe(result), sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
