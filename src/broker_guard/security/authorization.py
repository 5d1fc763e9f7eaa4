"""Authorization decision engine.

``SecurityManager`` is a stateless object closed over an immutable
``ServerConfiguration``. Every method is a pure function of the
configuration and its arguments: no caching, no I/O beyond logging, and
no exception escapes the decision boundary. Failures resolve to ``False``
and the cause is logged for operators only.

Overlapping prefixes: a request is allowed if *any* prefix that is a
literal string-prefix of the address grants the permission to one of the
user's roles, i.e. grants are unioned across all matching prefixes.
Prefixes are scanned longest first (ties broken lexically) so the prefix
named in debug logs is deterministic; the outcome never depends on the
scan order.
"""

import logging
from types import MappingProxyType
from typing import (
    AbstractSet,
    Any,
    Dict,
    FrozenSet,
    Iterable,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from ..models.configuration import AddressRoleGrants, ServerConfiguration
from ..models.permission import Permission
from ..models.user import User

logger = logging.getLogger(__name__)


def _scan_order(access_control: Mapping[str, AddressRoleGrants]) -> Tuple[AddressRoleGrants, ...]:
    return tuple(
        sorted(access_control.values(), key=lambda g: (-len(g.prefix), g.prefix))
    )


def _coerce_permission(value: Any) -> Optional[Permission]:
    """Accept a ``Permission`` or its string value; None for anything else."""
    try:
        return Permission(value)
    except (ValueError, TypeError):
        logger.info("Denied request for unknown permission %r", value)
        return None


class SecurityManager:
    """Strict security callback for the broker."""

    def __init__(self, configuration: ServerConfiguration):
        if configuration is None:
            raise TypeError("configuration must not be None")
        self._configuration = configuration
        self._grants = _scan_order(configuration.access_control)

    @property
    def configuration(self) -> ServerConfiguration:
        return self._configuration

    # -----------------------------------------------------------------------
    # Authentication
    # -----------------------------------------------------------------------

    def _authenticate(self, username: Optional[str], password: Optional[str]) -> Optional[User]:
        if username is None:
            logger.info("Authentication failed: no username supplied")
            return None

        user = self._configuration.users.get(username)
        if user is None:
            logger.info("Authentication failed: unknown user %r", username)
            return None

        if password is None:
            logger.info("Authentication failed: no password supplied for %r", username)
            return None

        try:
            verified = user.password.check(password)
        except Exception:
            logger.error("Password verification error for %r", username, exc_info=True)
            return None

        if not verified:
            logger.info("Authentication failed: bad credentials for %r", username)
            return None
        return user

    def validate_user(self, username: Optional[str], password: Optional[str]) -> bool:
        """Return True if *username* exists and *password* verifies."""
        return self._authenticate(username, password) is not None

    def validate_user_with_certificates(
        self,
        username: Optional[str],
        password: Optional[str],
        certificates: Optional[Sequence[Any]] = None,
    ) -> bool:
        """Certificate-carrying variant; certificates are not consulted."""
        return self.validate_user(username, password)

    # -----------------------------------------------------------------------
    # Authorization
    # -----------------------------------------------------------------------

    def _matching(self, address: str) -> Iterable[AddressRoleGrants]:
        for grants in self._grants:
            if address.startswith(grants.prefix):
                yield grants

    def _roles_permit(
        self,
        roles: AbstractSet[str],
        address: str,
        permission: Permission,
    ) -> Optional[str]:
        """Return the granting prefix, or None when nothing grants the request."""
        for address_grants in self._matching(address):
            for role, permissions in address_grants.grants.items():
                if role in roles and permission in permissions:
                    return address_grants.prefix
        return None

    def grants_for(self, address: str) -> Mapping[str, FrozenSet[Permission]]:
        """Union of role grants across every prefix matching *address*."""
        merged: Dict[str, Set[Permission]] = {}
        for address_grants in self._matching(address):
            for role, permissions in address_grants.grants.items():
                merged.setdefault(role, set()).update(permissions)
        return MappingProxyType({role: frozenset(p) for role, p in merged.items()})

    def authorize(
        self,
        username: Optional[str],
        password: Optional[str],
        address: str,
        permission: Permission,
    ) -> bool:
        """Authenticate *username* and decide whether it may perform *permission* on *address*."""
        permission = _coerce_permission(permission)
        if permission is None:
            return False

        user = self._authenticate(username, password)
        if user is None:
            return False

        prefix = self._roles_permit(user.roles, address, permission)
        if prefix is None:
            logger.info(
                "Denied %s on %r for %r: no matching grant",
                permission.value, address, username,
            )
            return False

        logger.debug(
            "Allowed %s on %r for %r via prefix %r",
            permission.value, address, username, prefix,
        )
        return True

    def authorize_roles(
        self,
        roles: AbstractSet[str],
        address: str,
        permission: Permission,
        authenticated: bool = False,
    ) -> bool:
        """Decide by role set alone, without a password check.

        Only meaningful when the caller has already authenticated the
        identity holding *roles*; otherwise the request is denied.
        """
        permission = _coerce_permission(permission)
        if permission is None:
            return False
        if not authenticated:
            logger.info("Denied %s on %r: identity not authenticated", permission.value, address)
            return False
        return self._roles_permit(roles, address, permission) is not None

    # -----------------------------------------------------------------------
    # Broker callback overloads
    # -----------------------------------------------------------------------

    def validate_user_and_role(
        self,
        username: Optional[str],
        password: Optional[str],
        roles: Optional[AbstractSet[Any]],
        permission: Permission,
    ) -> bool:
        """Address-less legacy check. Always denies."""
        logger.debug("Denied address-less %r check for %r", permission, username)
        return False

    def validate_user_and_role_for_address(
        self,
        username: Optional[str],
        password: Optional[str],
        roles: Optional[AbstractSet[Any]],
        permission: Permission,
        address: str,
        connection: Optional[Any] = None,
    ) -> bool:
        """Address-aware check invoked by the broker for each operation.

        *roles* and *connection* come from the broker and are ignored; the
        user's roles are taken from the configuration.
        """
        return self.authorize(username, password, address, permission)
