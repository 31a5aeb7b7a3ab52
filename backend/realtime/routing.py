"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.transporter_consumer import TransporterConsumer
from .consumers.farmer_consumer import FarmerConsumer

websocket_urlpatterns = [
    # Transporter offers and availability
    # URL: ws://localhost:8000/ws/transporter/?token=<access>
    re_path(
        r"ws/transporter/$",
        TransporterConsumer.as_asgi(),
        name="transporter-ws"
    ),

    # Farmer dispatch outcomes
    # URL: ws://localhost:8000/ws/farmer/?token=<access>
    re_path(
        r"ws/farmer/$",
        FarmerConsumer.as_asgi(),
        name="farmer-ws"
    ),
]
