"""Role grant index: ``prefix -> role -> {permission}``.

The access-control section of a configuration document is an ordered list
of rules. Folding it into this index is a pure union-reduce, so rule order
and duplicate rules do not affect the result.
"""

from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Set

from ..models.configuration import AccessRule, AddressRoleGrants
from ..models.permission import Permission


class RoleGrantIndexBuilder:
    """Accumulates grants and produces an immutable index."""

    def __init__(self):
        self._data: Dict[str, Dict[str, Set[Permission]]] = {}

    def grant(self, prefix: str, role: str, permission: Permission) -> None:
        """Grant *permission* to *role* on addresses starting with *prefix*."""
        roles_for_prefix = self._data.setdefault(prefix, {})
        roles_for_prefix.setdefault(role, set()).add(permission)

    def add_rule(self, rule: AccessRule) -> None:
        self.grant(rule.prefix, rule.role, rule.permission)

    def build(self) -> Mapping[str, AddressRoleGrants]:
        """Freeze the accumulated grants into a read-only index."""
        results: Dict[str, AddressRoleGrants] = {}
        for prefix, roles_for_prefix in self._data.items():
            grants = {
                role: frozenset(permissions)
                for role, permissions in roles_for_prefix.items()
            }
            results[prefix] = AddressRoleGrants(
                prefix=prefix,
                grants=MappingProxyType(grants),
            )
        return MappingProxyType(results)


def build_role_grants(rules: Iterable[AccessRule]) -> Mapping[str, AddressRoleGrants]:
    """Fold *rules* into a ``prefix -> AddressRoleGrants`` index."""
    builder = RoleGrantIndexBuilder()
    for rule in rules:
        builder.add_rule(rule)
    return builder.build()
