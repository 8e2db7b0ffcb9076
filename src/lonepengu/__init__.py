"""LonePengu — authentication and session lifecycle service.

Issues, validates, refreshes and revokes bearer credentials for
multi-device clients, backed by a durable session store.
"""

__version__ = "0.1.0"
