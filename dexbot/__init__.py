"""dexbot - limit-order trading bot for the XPR Network dex contract."""

__version__ = "0.1.0"
