"""Memoria error types.

Startup problems raise ConfigurationError and are fatal. NotFound is surfaced
to tool callers as a rejected operation. TransientStoreError wraps a single
failed statement; callers on non-critical paths log and continue.
"""


class MemoriaError(Exception):
    """Base class for all Memoria errors."""


class ConfigurationError(MemoriaError):
    """Missing or invalid configuration (bad DB URL, bad numeric setting)."""


class NotFound(MemoriaError):
    """A referenced fingerprint or content row does not exist."""

    def __init__(self, kind: str, ident):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} with ID {ident} not found")


class TransientStoreError(MemoriaError):
    """A single storage statement failed."""
