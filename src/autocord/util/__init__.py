"""
Utility helpers for Autocord.

- **logger.py**: Centralized logging with colored console output routed through
  prompt_toolkit and a per-session rotating log file. Quiets noisy library
  loggers (Discord internals, aiosqlite).

- **discord_sink.py**: Py-cord implementation of the engine's side-effect sink.
  Maps Discord exceptions onto the engine's error taxonomy.
"""
