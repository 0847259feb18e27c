from __future__ import annotations


class IdentityStoreError(Exception):
    """Base class for every failure raised by the identity store."""


class NotFoundError(IdentityStoreError):
    pass


class InvalidArgumentError(IdentityStoreError):
    pass


class ConflictError(IdentityStoreError):
    pass


class CryptographicError(IdentityStoreError):
    pass


class PersistenceError(IdentityStoreError):
    pass


class ConfigurationError(IdentityStoreError):
    pass
