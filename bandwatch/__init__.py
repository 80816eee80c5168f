"""bandwatch - multi-timeframe Bollinger Band and open-interest screener."""

__version__ = "0.2.0"
