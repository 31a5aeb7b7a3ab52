"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .transporter_consumer import TransporterConsumer
from .farmer_consumer import FarmerConsumer

__all__ = [
    "BaseConsumer",
    "TransporterConsumer",
    "FarmerConsumer",
]
