"""Server runtime: load, publish, and reload policy snapshots.

A reload builds a complete new ``ServerConfiguration`` and
``SecurityManager`` first and then publishes them with one reference
assignment. Authorization calls read the reference once per call, so none
of them ever observes a partially updated policy. A failed reload leaves
the previous snapshot in place.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import AbstractSet, Any, FrozenSet, Mapping, Optional, Sequence, Union

from ..config import Settings, get_settings
from ..models.configuration import ServerConfiguration
from ..models.permission import Permission
from ..observability.logging import set_log_context
from ..parsing.diagnostics import DiagnosticSink
from ..parsing.parser import parse_configuration_file
from ..security.authorization import SecurityManager
from .factory import Broker, BrokerFactory, BrokerPlan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolicySnapshot:
    configuration: ServerConfiguration
    security_manager: SecurityManager


class SwappableSecurityManager:
    """Security callback that always consults the latest published snapshot.

    Before the first snapshot is published every decision is a denial.
    """

    def __init__(self, runtime: "ServerRuntime"):
        self._runtime = runtime

    def _current(self) -> Optional[SecurityManager]:
        snapshot = self._runtime.current_snapshot
        if snapshot is None:
            logger.warning("Denied security check: no configuration loaded")
            return None
        return snapshot.security_manager

    def validate_user(self, username: Optional[str], password: Optional[str]) -> bool:
        current = self._current()
        return current is not None and current.validate_user(username, password)

    def validate_user_with_certificates(
        self,
        username: Optional[str],
        password: Optional[str],
        certificates: Optional[Sequence[Any]] = None,
    ) -> bool:
        current = self._current()
        return current is not None and current.validate_user_with_certificates(
            username, password, certificates
        )

    def authorize(
        self,
        username: Optional[str],
        password: Optional[str],
        address: str,
        permission: Permission,
    ) -> bool:
        current = self._current()
        return current is not None and current.authorize(username, password, address, permission)

    def authorize_roles(
        self,
        roles: AbstractSet[str],
        address: str,
        permission: Permission,
        authenticated: bool = False,
    ) -> bool:
        current = self._current()
        return current is not None and current.authorize_roles(
            roles, address, permission, authenticated
        )

    def grants_for(self, address: str) -> Mapping[str, FrozenSet[Permission]]:
        current = self._current()
        if current is None:
            return MappingProxyType({})
        return current.grants_for(address)

    def validate_user_and_role(
        self,
        username: Optional[str],
        password: Optional[str],
        roles: Optional[AbstractSet[Any]],
        permission: Permission,
    ) -> bool:
        current = self._current()
        return current is not None and current.validate_user_and_role(
            username, password, roles, permission
        )

    def validate_user_and_role_for_address(
        self,
        username: Optional[str],
        password: Optional[str],
        roles: Optional[AbstractSet[Any]],
        permission: Permission,
        address: str,
        connection: Optional[Any] = None,
    ) -> bool:
        current = self._current()
        return current is not None and current.validate_user_and_role_for_address(
            username, password, roles, permission, address, connection
        )


class ServerRuntime:
    """Owns the configuration file, the current snapshot, and the broker."""

    def __init__(
        self,
        path: Union[str, Path],
        settings: Optional[Settings] = None,
        on_diagnostic: Optional[DiagnosticSink] = None,
    ):
        self._path = Path(path).absolute()
        self._settings = settings or get_settings()
        self._on_diagnostic = on_diagnostic
        self._factory = BrokerFactory(self._settings)
        self._snapshot: Optional[PolicySnapshot] = None
        self._swap_lock = threading.Lock()
        self._broker: Optional[Broker] = None
        self.security_manager = SwappableSecurityManager(self)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def current_snapshot(self) -> Optional[PolicySnapshot]:
        """The published snapshot, or None before the first load."""
        return self._snapshot

    @property
    def snapshot(self) -> PolicySnapshot:
        snapshot = self._snapshot
        if snapshot is None:
            raise RuntimeError("No configuration loaded")
        return snapshot

    def _build(self) -> PolicySnapshot:
        result = parse_configuration_file(self._path, self._on_diagnostic)
        configuration = result.configuration
        return PolicySnapshot(
            configuration=configuration,
            security_manager=SecurityManager(configuration),
        )

    def load(self) -> BrokerPlan:
        """Parse the configuration file and publish the first snapshot."""
        snapshot = self._build()
        with self._swap_lock:
            self._snapshot = snapshot
        set_log_context(broker=snapshot.configuration.name)
        return BrokerPlan(
            configuration=self._factory.configure(snapshot.configuration),
            security_manager=snapshot.security_manager,
        )

    def reload(self) -> PolicySnapshot:
        """Re-parse the configuration file and swap in the new policy.

        Raises whatever parsing raises; the previous snapshot stays active.
        """
        snapshot = self._build()
        with self._swap_lock:
            previous = self._snapshot
            self._snapshot = snapshot

        if previous is not None and previous.configuration.addresses != snapshot.configuration.addresses:
            logger.warning("Address declarations changed; they take effect after a restart")
        logger.info("Reloaded configuration from %s", self._path)
        return snapshot

    def start(self) -> Broker:
        """Load the configuration and start the configured broker."""
        plan = self.load()
        broker_factory = self._factory.load_broker_factory()
        broker = broker_factory(plan.configuration, self.security_manager)
        broker.start()
        self._broker = broker
        logger.info("Broker '%s' started", plan.configuration.name)
        return broker

    def stop(self) -> None:
        broker, self._broker = self._broker, None
        if broker is not None:
            broker.stop()
            logger.info("Broker stopped")
