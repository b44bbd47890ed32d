"""
Real-time telemetry delivery to WebSocket observers.
"""

from .gateway import ConnectionGateway
from .hub import BroadcastHub, ObserverConnection
from .protocol import SubscriptionMessage, TelemetryFrame

__all__ = [
    "BroadcastHub",
    "ConnectionGateway",
    "ObserverConnection",
    "SubscriptionMessage",
    "TelemetryFrame",
]
