"""Game domain services: scoring, timers and the per-room engine.

This package contains the game mechanics imported by the socket
gateway, keeping transport concerns separated from core game logic.
"""
