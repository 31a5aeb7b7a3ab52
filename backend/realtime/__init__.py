"""
Realtime app for WebSocket delivery of transport dispatch events.

This app provides:
- WebSocket consumers for transporters and farmers
- The Channels-backed notification gateway used by the dispatch engine
- JWT authentication middleware for WebSocket connections

Key Components:
    - consumers/: WebSocket consumers (transporter, farmer)
    - notifications.py: ChannelsNotificationGateway (user_<id> groups)
    - middleware.py: JWT querystring / session auth

Usage:
    from realtime.consumers import TransporterConsumer, FarmerConsumer
    from realtime.notifications import ChannelsNotificationGateway
"""
