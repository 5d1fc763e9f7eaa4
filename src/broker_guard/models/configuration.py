"""Access-control index entries and the root configuration aggregate."""

from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Mapping

from .address import Address
from .permission import Permission
from .user import User


@dataclass(frozen=True, slots=True)
class AccessRule:
    """One flattened ``(prefix, permission, role)`` rule from the document."""

    prefix: str
    permission: Permission
    role: str


@dataclass(frozen=True)
class AddressRoleGrants:
    """Permissions granted per role on every address starting with ``prefix``."""

    prefix: str
    grants: Mapping[str, FrozenSet[Permission]]

    def permissions_for(self, role: str) -> FrozenSet[Permission]:
        return self.grants.get(role, frozenset())


@dataclass(frozen=True)
class ServerConfiguration:
    """Immutable policy snapshot produced by one parse.

    Cross references between users and roles are validated before this is
    constructed. Mappings are read-only proxies; the instance is safe to
    share between threads.
    """

    name: str
    data_directory: Path
    addresses: FrozenSet[Address]
    roles: FrozenSet[str]
    users: Mapping[str, User]
    access_control: Mapping[str, AddressRoleGrants]
