"""Authentication core.

Learn: Identity is asserted upstream (email + provider); this package
turns that assertion into credentials and tracks them:
1. tokens   → sign/verify access and refresh JWTs
2. identity → map (email, provider) to a stable user, race-free
3. store    → persist and look up sessions keyed by token

SessionManager (services/session_manager.py) is the only caller.
"""
