"""
clawproxy: model-routing and session-relay WebSocket proxy.
"""

__version__ = "0.1.0"
