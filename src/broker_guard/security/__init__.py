"""Security module for Broker Guard: password hashing, grant index, authorization."""

from .authorization import SecurityManager
from .grants import RoleGrantIndexBuilder, build_role_grants
from .passwords import (
    Bcrypt,
    PasswordAlgorithm,
    Pbkdf2HmacSha256,
    default_algorithm,
    resolve_algorithm,
)

__all__ = [
    "SecurityManager",
    "RoleGrantIndexBuilder",
    "build_role_grants",
    "Bcrypt",
    "PasswordAlgorithm",
    "Pbkdf2HmacSha256",
    "default_algorithm",
    "resolve_algorithm",
]
