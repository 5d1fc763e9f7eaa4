"""Users and their stored password records."""

from dataclasses import dataclass
from typing import FrozenSet, TYPE_CHECKING

if TYPE_CHECKING:
    from ..security.passwords import PasswordAlgorithm


@dataclass(frozen=True, slots=True)
class PasswordRecord:
    """A stored (algorithm, salt, hash) triple.

    ``check()`` never raises: malformed encodings simply fail to verify.
    """

    algorithm: "PasswordAlgorithm"
    salt: str
    hash: str

    @property
    def algorithm_id(self) -> str:
        return self.algorithm.identifier

    def check(self, plaintext: str) -> bool:
        """Return True if *plaintext* matches this record."""
        return self.algorithm.verify(plaintext, self.salt, self.hash)


@dataclass(frozen=True, slots=True)
class User:
    """A user with a password and a set of declared role names."""

    name: str
    password: PasswordRecord
    roles: FrozenSet[str]
