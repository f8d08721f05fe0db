"""
Feature modules live under this package.

Each module owns its models, service functions and blueprint, and reuses the
platform pieces (auth, RBAC, storage, DB session, error types).
"""
