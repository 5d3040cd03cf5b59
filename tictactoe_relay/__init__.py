"""
Tic Tac Toe Relay - Real-time bridge to an external game engine.

Each connected client gets its own opponent engine process. The relay:
- Launches and supervises the engine process
- Decodes the engine's line protocol into typed events
- Tracks turns and board occupancy per session
- Relays events to the client and client moves to the engine
"""

__version__ = "0.1.0"
