"""Market universes — which assets each market scans and how they are scored."""

from __future__ import annotations

from dataclasses import dataclass, field

from signalhub.config import Settings, get_settings
from signalhub.signals.scoring import ScoreProfile, get_profile

CRYPTO = "crypto"
EQUITY = "equity"


@dataclass(frozen=True)
class Asset:
    symbol: str
    name: str
    quote_symbol: str            # primary provider symbol (Binance pair or Yahoo ticker)
    fallback_symbol: str = ""    # symbol for the fallback provider, when it differs


@dataclass(frozen=True)
class MarketSpec:
    key: str
    label: str
    kind: str          # "crypto" or "equity"
    profile: str       # score profile name
    assets: tuple[Asset, ...] = field(default_factory=tuple)

    def find(self, symbol: str) -> Asset | None:
        wanted = symbol.strip().upper()
        for asset in self.assets:
            if wanted in (asset.symbol.upper(), asset.quote_symbol.upper()):
                return asset
        return None


def _coin(symbol: str, name: str) -> Asset:
    return Asset(symbol=symbol, name=name, quote_symbol=f"{symbol}USDT", fallback_symbol=f"{symbol}-USD")


def _listed(suffix: str, pairs: list[tuple[str, str]]) -> tuple[Asset, ...]:
    return tuple(
        Asset(symbol=s, name=n, quote_symbol=s if not suffix else f"{s}.{suffix}")
        for s, n in pairs
    )


MARKETS: dict[str, MarketSpec] = {
    "crypto": MarketSpec(
        key="crypto", label="Crypto", kind=CRYPTO, profile="crypto",
        assets=(
            _coin("BTC", "Bitcoin"),
            _coin("ETH", "Ethereum"),
            _coin("BNB", "BNB"),
            _coin("SOL", "Solana"),
            _coin("XRP", "XRP"),
            _coin("ADA", "Cardano"),
            _coin("DOGE", "Dogecoin"),
            _coin("TRX", "TRON"),
            _coin("AVAX", "Avalanche"),
            _coin("DOT", "Polkadot"),
            _coin("LTC", "Litecoin"),
            _coin("LINK", "Chainlink"),
        ),
    ),
    "aex": MarketSpec(
        key="aex", label="AEX", kind=EQUITY, profile="equity",
        assets=_listed("AS", [
            ("ASML", "ASML Holding"),
            ("ADYEN", "Adyen"),
            ("INGA", "ING Groep"),
            ("PRX", "Prosus"),
            ("SHELL", "Shell"),
            ("UNA", "Unilever"),
            ("HEIA", "Heineken"),
            ("PHIA", "Philips"),
            ("AD", "Ahold Delhaize"),
            ("WKL", "Wolters Kluwer"),
        ]),
    ),
    "dax": MarketSpec(
        key="dax", label="DAX", kind=EQUITY, profile="equity",
        assets=_listed("DE", [
            ("SAP", "SAP"),
            ("SIE", "Siemens"),
            ("ALV", "Allianz"),
            ("DTE", "Deutsche Telekom"),
            ("BAS", "BASF"),
            ("BAYN", "Bayer"),
            ("BMW", "BMW"),
            ("MBG", "Mercedes-Benz Group"),
            ("ADS", "adidas"),
            ("MUV2", "Munich Re"),
        ]),
    ),
    "nasdaq": MarketSpec(
        key="nasdaq", label="Nasdaq", kind=EQUITY, profile="equity",
        assets=_listed("", [
            ("AAPL", "Apple"),
            ("MSFT", "Microsoft"),
            ("NVDA", "NVIDIA"),
            ("AMZN", "Amazon"),
            ("GOOGL", "Alphabet"),
            ("META", "Meta Platforms"),
            ("TSLA", "Tesla"),
            ("AVGO", "Broadcom"),
            ("COST", "Costco"),
            ("NFLX", "Netflix"),
        ]),
    ),
    "etfs": MarketSpec(
        key="etfs", label="ETFs", kind=EQUITY, profile="equity",
        assets=_listed("", [
            ("SPY", "SPDR S&P 500"),
            ("QQQ", "Invesco QQQ Trust"),
            ("VTI", "Vanguard Total Stock Market"),
            ("IWM", "iShares Russell 2000"),
            ("DIA", "SPDR Dow Jones Industrial Average"),
            ("EEM", "iShares MSCI Emerging Markets"),
            ("EFA", "iShares MSCI EAFE"),
            ("XLK", "Technology Select Sector SPDR"),
            ("XLF", "Financial Select Sector SPDR"),
            ("XLE", "Energy Select Sector SPDR"),
        ]),
    ),
}


def get_market(key: str) -> MarketSpec:
    try:
        return MARKETS[key.strip().lower()]
    except KeyError:
        raise KeyError(f"Unknown market {key!r}; known: {sorted(MARKETS)}") from None


def profile_for_market(market: MarketSpec, settings: Settings | None = None) -> ScoreProfile:
    """Score profile for a market, with the per-audience RSI mode from settings."""
    settings = settings or get_settings()
    rsi_mode = settings.crypto_rsi_mode if market.kind == CRYPTO else settings.equity_rsi_mode
    return get_profile(market.profile, rsi_mode=rsi_mode)
