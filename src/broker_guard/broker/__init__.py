"""Broker-facing configuration and server runtime."""

from .factory import (
    AddressDeclaration,
    AddressSettings,
    Broker,
    BrokerConfiguration,
    BrokerFactory,
    BrokerPlan,
    RoutingType,
    StorageLocations,
)
from .runtime import ServerRuntime, SwappableSecurityManager

__all__ = [
    "AddressDeclaration",
    "AddressSettings",
    "Broker",
    "BrokerConfiguration",
    "BrokerFactory",
    "BrokerPlan",
    "RoutingType",
    "StorageLocations",
    "ServerRuntime",
    "SwappableSecurityManager",
]
