"""
Execution package.

- DexGateway: stages dex contract actions and flushes them as transactions
- RelayTransactor: hands action lists to the signing relay
"""

from dexbot.execution.gateway import DexGateway
from dexbot.execution.signer import RelayTransactor, TransactionError

__all__ = [
    "DexGateway",
    "RelayTransactor",
    "TransactionError",
]
