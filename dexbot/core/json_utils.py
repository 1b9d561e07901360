"""
Fast JSON utilities backed by orjson.

Usage:
    from dexbot.core.json_utils import dumps, loads

    log.info(dumps({"event": "fill", "price": "0.005141"}))
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import orjson


def _default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj)
    raise TypeError(f"Type is not JSON serializable: {type(obj).__name__}")


def dumps(obj: Any) -> str:
    """Compact JSON encode to string."""
    return orjson.dumps(obj, default=_default).decode("utf-8")


def dumps_bytes(obj: Any, pretty: bool = False) -> bytes:
    option = orjson.OPT_INDENT_2 if pretty else 0
    return orjson.dumps(obj, default=_default, option=option)


def loads(s: str | bytes) -> Any:
    return orjson.loads(s)
