"""Pluggable password hashing algorithms.

Each algorithm is identified by a short textual identifier that embeds its
parameters, e.g. ``PBKDF2WithHmacSHA256:10000:256`` or ``bcrypt:12``. The
identifier is stored in the configuration document next to the salt and
hash, and ``resolve_algorithm()`` turns it back into an implementation.

``verify()`` is constant-time with respect to the hash comparison and never
raises: a malformed salt or hash is reported as a failed verification.
"""

import hmac
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import bcrypt
from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..exceptions import PasswordAlgorithmError, PasswordError
from ..models.user import PasswordRecord

logger = logging.getLogger(__name__)


class PasswordAlgorithm(ABC):
    """A keyed password hashing algorithm with fixed parameters."""

    @property
    @abstractmethod
    def identifier(self) -> str:
        """Identifier embedding the algorithm family and its parameters."""

    @abstractmethod
    def hash(self, plaintext: str) -> Tuple[str, str]:
        """Hash *plaintext* with a fresh random salt. Returns ``(salt, hash)``."""

    @abstractmethod
    def verify(self, plaintext: str, salt: str, hashed: str) -> bool:
        """Return True if *plaintext* hashes to *hashed* under *salt*."""

    def create_hashed(self, plaintext: str) -> PasswordRecord:
        """Hash *plaintext* and wrap the result in a ``PasswordRecord``."""
        salt, hashed = self.hash(plaintext)
        return PasswordRecord(algorithm=self, salt=salt, hash=hashed)


# ---------------------------------------------------------------------------
# PBKDF2 with HMAC-SHA256
# ---------------------------------------------------------------------------

PBKDF2_FAMILY = "PBKDF2WithHmacSHA256"
PBKDF2_DEFAULT_ITERATIONS = 10_000
PBKDF2_DEFAULT_KEY_LENGTH = 256  # bits
_PBKDF2_SALT_BYTES = 16


@dataclass(frozen=True)
class Pbkdf2HmacSha256(PasswordAlgorithm):
    """PBKDF2 key derivation over HMAC-SHA256.

    Salt and hash are stored as upper-case hexadecimal. ``key_length`` is in
    bits and must be a multiple of 8.
    """

    iterations: int = PBKDF2_DEFAULT_ITERATIONS
    key_length: int = PBKDF2_DEFAULT_KEY_LENGTH

    def __post_init__(self):
        if self.iterations < 1:
            raise PasswordAlgorithmError(
                f"PBKDF2 iteration count must be positive, got {self.iterations}",
                identifier=self.identifier,
            )
        if self.key_length < 8 or self.key_length % 8 != 0:
            raise PasswordAlgorithmError(
                f"PBKDF2 key length must be a positive multiple of 8 bits, got {self.key_length}",
                identifier=self.identifier,
            )

    @property
    def identifier(self) -> str:
        return f"{PBKDF2_FAMILY}:{self.iterations}:{self.key_length}"

    def _kdf(self, salt: bytes) -> PBKDF2HMAC:
        return PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=self.key_length // 8,
            salt=salt,
            iterations=self.iterations,
        )

    def hash(self, plaintext: str) -> Tuple[str, str]:
        salt = os.urandom(_PBKDF2_SALT_BYTES)
        derived = self._kdf(salt).derive(plaintext.encode("utf-8"))
        return salt.hex().upper(), derived.hex().upper()

    def verify(self, plaintext: str, salt: str, hashed: str) -> bool:
        try:
            salt_bytes = bytes.fromhex(salt)
            expected = bytes.fromhex(hashed)
            # PBKDF2HMAC.verify compares in constant time
            self._kdf(salt_bytes).verify(plaintext.encode("utf-8"), expected)
        except (InvalidKey, ValueError, TypeError) as e:
            logger.debug("PBKDF2 verification failed: %s", type(e).__name__)
            return False
        return True


# ---------------------------------------------------------------------------
# bcrypt
# ---------------------------------------------------------------------------

BCRYPT_FAMILY = "bcrypt"
BCRYPT_DEFAULT_ROUNDS = 12


@dataclass(frozen=True)
class Bcrypt(PasswordAlgorithm):
    """bcrypt with a fixed cost factor.

    The salt is the ``gensalt()`` string and the hash is the full ``hashpw()``
    output, both ASCII.
    """

    rounds: int = BCRYPT_DEFAULT_ROUNDS

    def __post_init__(self):
        if not 4 <= self.rounds <= 31:
            raise PasswordAlgorithmError(
                f"bcrypt rounds must be between 4 and 31, got {self.rounds}",
                identifier=self.identifier,
            )

    @property
    def identifier(self) -> str:
        return f"{BCRYPT_FAMILY}:{self.rounds}"

    def hash(self, plaintext: str) -> Tuple[str, str]:
        salt = bcrypt.gensalt(rounds=self.rounds)
        try:
            hashed = bcrypt.hashpw(plaintext.encode("utf-8"), salt)
        except ValueError as e:
            raise PasswordError(f"bcrypt could not hash password: {e}") from e
        return salt.decode("ascii"), hashed.decode("ascii")

    def verify(self, plaintext: str, salt: str, hashed: str) -> bool:
        try:
            computed = bcrypt.hashpw(plaintext.encode("utf-8"), salt.encode("ascii"))
            return hmac.compare_digest(computed, hashed.encode("ascii"))
        except (ValueError, TypeError, UnicodeEncodeError) as e:
            logger.debug("bcrypt verification failed: %s", type(e).__name__)
            return False


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def _parse_int_parameters(identifier: str, parameters: List[str], count: int) -> List[int]:
    if len(parameters) != count:
        raise PasswordAlgorithmError(
            f"Algorithm identifier '{identifier}' expects {count} parameter(s)",
            identifier=identifier,
        )
    try:
        return [int(p) for p in parameters]
    except ValueError:
        raise PasswordAlgorithmError(
            f"Algorithm identifier '{identifier}' has non-integer parameters",
            identifier=identifier,
        ) from None


def _pbkdf2_from_parameters(identifier: str, parameters: List[str]) -> PasswordAlgorithm:
    iterations, key_length = _parse_int_parameters(identifier, parameters, 2)
    return Pbkdf2HmacSha256(iterations=iterations, key_length=key_length)


def _bcrypt_from_parameters(identifier: str, parameters: List[str]) -> PasswordAlgorithm:
    (rounds,) = _parse_int_parameters(identifier, parameters, 1)
    return Bcrypt(rounds=rounds)


_FAMILIES: Dict[str, Callable[[str, List[str]], PasswordAlgorithm]] = {
    PBKDF2_FAMILY: _pbkdf2_from_parameters,
    BCRYPT_FAMILY: _bcrypt_from_parameters,
}


def supported_families() -> List[str]:
    """Names of the algorithm families ``resolve_algorithm`` understands."""
    return sorted(_FAMILIES)


def resolve_algorithm(identifier: str) -> PasswordAlgorithm:
    """Resolve an algorithm identifier to an implementation.

    Raises:
        PasswordAlgorithmError: Unknown family or malformed parameters.
    """
    family, _, rest = identifier.partition(":")
    factory = _FAMILIES.get(family)
    if factory is None:
        raise PasswordAlgorithmError(
            f"Unsupported password algorithm '{identifier}' "
            f"(supported: {', '.join(supported_families())})",
            identifier=identifier,
        )
    parameters = rest.split(":") if rest else []
    return factory(identifier, parameters)


def default_algorithm(identifier: Optional[str] = None) -> PasswordAlgorithm:
    """Return the algorithm named by *identifier* or by the settings."""
    if identifier is None:
        from ..config import get_settings

        identifier = get_settings().password_algorithm
    return resolve_algorithm(identifier)
