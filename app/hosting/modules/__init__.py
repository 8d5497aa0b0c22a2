"""
Settings-area feature modules.

Each module owns its model, service functions and JSON routes, and reuses the
platform primitives (auth, RBAC, audit, crypto, DB session, error translation).
"""
