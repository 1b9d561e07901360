"""
State management package.

This package contains tracked-order persistence and the order-state snapshot.
"""

from dexbot.state.store import OrderStateEntry, OrderStateWriter, TrackedOrderStore
from dexbot.state.state_atomic import AtomicTrackedOrderStore

__all__ = [
    "OrderStateEntry",
    "OrderStateWriter",
    "TrackedOrderStore",
    "AtomicTrackedOrderStore",
]
