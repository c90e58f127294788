"""Backend package for the MSFS Copilot relay.

This package contains the cockpit state store, the WebSocket fan-out
layer, the control gateway, telemetry sources, and the client-side
connection lifecycle manager.
"""
