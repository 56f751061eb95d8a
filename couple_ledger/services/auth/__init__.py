"""Authentication gateways."""

from couple_ledger.services.auth.gateway import (
    AuthError,
    AuthGateway,
    EmailInUseError,
    FirebaseAuthGateway,
    InMemoryAuthGateway,
    InvalidCredentialsError,
    WeakPasswordError,
)

__all__ = [
    "AuthError",
    "AuthGateway",
    "EmailInUseError",
    "FirebaseAuthGateway",
    "InMemoryAuthGateway",
    "InvalidCredentialsError",
    "WeakPasswordError",
]
