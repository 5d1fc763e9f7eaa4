"""Domain model for broker guard configurations."""

from .address import Address, AddressKind, AnycastAddress, MulticastAddress
from .configuration import AccessRule, AddressRoleGrants, ServerConfiguration
from .permission import Permission
from .user import PasswordRecord, User

__all__ = [
    "Address",
    "AddressKind",
    "AnycastAddress",
    "MulticastAddress",
    "AccessRule",
    "AddressRoleGrants",
    "ServerConfiguration",
    "Permission",
    "PasswordRecord",
    "User",
]
