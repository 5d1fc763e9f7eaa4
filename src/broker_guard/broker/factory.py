"""Broker-facing configuration derived from a ``ServerConfiguration``.

The broker itself is an external collaborator. This module prepares what
it needs to register: address and queue declarations, address settings,
storage directories, acceptors, and the security callback. Broker
implementations plug in through the ``Broker`` base class and are loaded
from the ``broker_factory`` setting.
"""

import enum
import importlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, List, Mapping, Optional, Tuple

from ..config import Settings, get_settings
from ..exceptions import BrokerError
from ..models.address import Address, AnycastAddress, MulticastAddress
from ..models.configuration import ServerConfiguration
from ..security.authorization import SecurityManager

logger = logging.getLogger(__name__)

DEAD_LETTER_QUEUE = "DeadLetterQueue"
EXPIRY_QUEUE = "ExpiryQueue"

# Address setting match patterns
MANAGEMENT_MATCH = "activemq.management#"
DEFAULT_MATCH = "#"


class RoutingType(str, enum.Enum):
    MULTICAST = "MULTICAST"
    ANYCAST = "ANYCAST"


@dataclass(frozen=True, slots=True)
class AddressDeclaration:
    """An address (and its queues) to register with the broker."""

    name: str
    routing_type: RoutingType
    queues: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class AddressSettings:
    """Per-match address behaviour."""

    match: str
    dead_letter_address: str = DEAD_LETTER_QUEUE
    expiry_address: str = EXPIRY_QUEUE
    redelivery_delay: int = 0
    max_size_bytes: int = -1
    message_counter_history_day_limit: int = 10
    address_full_policy: str = "PAGE"
    auto_create_addresses: bool = True
    auto_create_queues: bool = True


@dataclass(frozen=True, slots=True)
class StorageLocations:
    """Absolute storage directories below the data directory."""

    journal: Path
    bindings: Path
    large_messages: Path
    paging: Path

    @classmethod
    def under(cls, data_directory: Path) -> "StorageLocations":
        base = data_directory.absolute()
        return cls(
            journal=base / "journal",
            bindings=base / "bindings",
            large_messages=base / "large-messages",
            paging=base / "paging",
        )


@dataclass(frozen=True, slots=True)
class CriticalAnalyzer:
    """Dead-lock detection parameters."""

    enabled: bool = True
    policy: str = "HALT"
    timeout_ms: int = 120_000
    check_period_ms: int = 60_000


@dataclass(frozen=True)
class BrokerConfiguration:
    """Everything the broker registers at start-up."""

    name: str
    addresses: Tuple[AddressDeclaration, ...]
    address_settings: Tuple[AddressSettings, ...]
    storage: StorageLocations
    acceptors: Mapping[str, str]
    persistence_enabled: bool = True
    critical_analyzer: CriticalAnalyzer = field(default_factory=CriticalAnalyzer)


@dataclass(frozen=True)
class BrokerPlan:
    """A broker configuration paired with its security callback."""

    configuration: BrokerConfiguration
    security_manager: SecurityManager


class Broker(ABC):
    """A broker implementation driven by a ``BrokerConfiguration``."""

    @abstractmethod
    def start(self) -> None:
        """Start accepting connections."""

    @abstractmethod
    def stop(self) -> None:
        """Stop the broker and release its resources."""


# Called with the broker configuration and a security callback
BrokerFactoryCallable = Callable[[BrokerConfiguration, Any], Broker]


def address_declaration(address: Address) -> AddressDeclaration:
    """Map a domain address to its broker declaration."""
    if isinstance(address, MulticastAddress):
        return AddressDeclaration(name=address.name, routing_type=RoutingType.MULTICAST)
    if isinstance(address, AnycastAddress):
        return AddressDeclaration(
            name=address.name,
            routing_type=RoutingType.ANYCAST,
            queues=(address.queue_name,),
        )
    raise TypeError(f"Unsupported address type: {type(address).__name__}")


def _built_in_addresses() -> List[AddressDeclaration]:
    return [
        AddressDeclaration(DEAD_LETTER_QUEUE, RoutingType.ANYCAST, (DEAD_LETTER_QUEUE,)),
        AddressDeclaration(EXPIRY_QUEUE, RoutingType.ANYCAST, (EXPIRY_QUEUE,)),
    ]


class BrokerFactory:
    """Builds broker plans and loads broker implementations."""

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings or get_settings()

    def configure(self, configuration: ServerConfiguration) -> BrokerConfiguration:
        declarations = sorted(
            (address_declaration(a) for a in configuration.addresses),
            key=lambda d: d.name,
        )
        declarations.extend(_built_in_addresses())

        return BrokerConfiguration(
            name=configuration.name,
            addresses=tuple(declarations),
            address_settings=(
                AddressSettings(match=MANAGEMENT_MATCH),
                AddressSettings(match=DEFAULT_MATCH),
            ),
            storage=StorageLocations.under(configuration.data_directory),
            acceptors=MappingProxyType({"all": self._settings.acceptor_url}),
        )

    def create(self, configuration: ServerConfiguration) -> BrokerPlan:
        """Derive the broker configuration and security callback."""
        plan = BrokerPlan(
            configuration=self.configure(configuration),
            security_manager=SecurityManager(configuration),
        )
        logger.debug(
            "Prepared broker '%s' with %d address declaration(s)",
            configuration.name,
            len(plan.configuration.addresses),
        )
        return plan

    def load_broker_factory(self) -> BrokerFactoryCallable:
        """Import the callable named by the ``broker_factory`` setting.

        Raises:
            BrokerError: The setting is empty or does not name a callable.
        """
        target = self._settings.broker_factory
        if not target:
            raise BrokerError(
                "No broker implementation configured (set BROKER_GUARD_BROKER_FACTORY)"
            )

        module_name, _, attribute = target.partition(":")
        if not module_name or not attribute:
            raise BrokerError(f"Broker factory '{target}' must have the form 'module:callable'")

        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise BrokerError(f"Cannot import broker module '{module_name}': {e}") from e

        factory = getattr(module, attribute, None)
        if not callable(factory):
            raise BrokerError(f"Broker factory '{target}' is not callable")
        return factory
