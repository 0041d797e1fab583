"""Conversation coordination primitives."""

from .bus import BusClosedError, MessageBus, Subscription
from .messages import Message, MessageKind
from .shutdown import ShutdownSignal
from .supervisor import Supervisor
from .turn import TurnArbiter, TurnCancelledError, TurnProvider

__all__ = [
    "BusClosedError",
    "MessageBus",
    "Subscription",
    "Message",
    "MessageKind",
    "ShutdownSignal",
    "Supervisor",
    "TurnArbiter",
    "TurnCancelledError",
    "TurnProvider",
]
