"""Address declarations.

An address is either multicast (every bound consumer receives a copy) or
anycast (exactly one consumer of the named queue receives it). The two
variants form a closed union; code that switches on them must handle both
and raise ``TypeError`` for anything else.
"""

import enum
from dataclasses import dataclass
from typing import Union


class AddressKind(str, enum.Enum):
    """Routing type of an address."""

    MULTICAST = "multicast"
    ANYCAST = "anycast"


@dataclass(frozen=True, slots=True)
class MulticastAddress:
    """An address delivering to all bound consumers."""

    name: str

    @property
    def kind(self) -> AddressKind:
        return AddressKind.MULTICAST


@dataclass(frozen=True, slots=True)
class AnycastAddress:
    """An address delivering to one consumer of ``queue_name``."""

    name: str
    queue_name: str

    @property
    def kind(self) -> AddressKind:
        return AddressKind.ANYCAST


Address = Union[MulticastAddress, AnycastAddress]
