"""Configuration document parser.

One synchronous pass per document:

1. Read the XML into a positioned element tree (well-formedness).
2. Validate the tree against the schema models; every violation becomes
   one diagnostic, so a human fixing the document sees all of them at once.
3. Check cross references (duplicate names, undeclared roles).
4. Fail with ``ConfigurationParseError`` if any ERROR/FATAL was observed.
5. Transform the validated tree into an immutable ``ServerConfiguration``.

Diagnostics are streamed to the caller's sink as they are found and also
returned in ``ParseResult.diagnostics`` (or carried by the exception).
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import BinaryIO, Dict, FrozenSet, Iterator, List, Mapping, Optional, TextIO, Tuple, Union

from pydantic import ValidationError

from ..exceptions import ConfigurationParseError
from ..models.address import Address, AnycastAddress, MulticastAddress
from ..models.configuration import AccessRule, AddressRoleGrants, ServerConfiguration
from ..models.user import PasswordRecord, User
from ..observability.logging import config_source_context
from ..security.grants import build_role_grants
from ..security.passwords import resolve_algorithm
from .diagnostics import (
    ERROR_DUPLICATE_ADDRESS,
    ERROR_DUPLICATE_ROLE,
    ERROR_DUPLICATE_USER,
    ERROR_UNDECLARED_ROLE,
    ERROR_XML_VALIDATION,
    WARN_UNDECLARED_ROLE,
    WARN_XML_NAMESPACE,
    Diagnostic,
    DiagnosticCollector,
    DiagnosticSink,
)
from .document import Element, read_document
from .schema import (
    NAMESPACE,
    ROOT_ELEMENT,
    AccessControlElement,
    AddressesElement,
    ConfigurationElement,
    RolesElement,
    UsersElement,
    attribute_collisions,
    duplicate_single_elements,
    element_data,
    locate,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParseResult:
    """A successfully parsed configuration and the diagnostics seen on the way."""

    configuration: ServerConfiguration
    diagnostics: Tuple[Diagnostic, ...]


def _format_loc(loc: tuple) -> str:
    text = ""
    for part in loc:
        if isinstance(part, int):
            text += f"[{part}]"
        else:
            text += f".{part}" if text else str(part)
    return text


class ConfigurationParser:
    """Parses one configuration document.

    The instance keeps no state between ``parse()`` calls; calling it twice
    on a re-readable stream yields structurally equal configurations.
    """

    def __init__(
        self,
        stream: Union[BinaryIO, TextIO],
        source: str,
        on_diagnostic: Optional[DiagnosticSink] = None,
    ):
        if stream is None:
            raise TypeError("stream must not be None")
        self._stream = stream
        self._source = source
        self._collector = DiagnosticCollector(on_diagnostic)

    @property
    def diagnostics(self) -> Tuple[Diagnostic, ...]:
        return self._collector.diagnostics

    def parse(self) -> ParseResult:
        """Parse the document.

        Raises:
            ConfigurationParseError: The document had ERROR or FATAL diagnostics.
            PasswordAlgorithmError: A user names an unknown password algorithm.
        """
        self._collector.reset()
        if self._stream.seekable():
            self._stream.seek(0)

        with config_source_context(self._source):
            root = read_document(self._stream, self._source, self._collector)
            validated = self._validate(root) if root is not None else None

            if self._collector.failed or validated is None:
                diagnostics = self._collector.diagnostics
                failures = sum(1 for d in diagnostics if d.is_failure)
                raise ConfigurationParseError(
                    f"{self._source}: configuration has {failures} error(s)",
                    diagnostics,
                )

            configuration = self._transform(validated)
            logger.info(
                "Parsed configuration '%s': %d address(es), %d role(s), %d user(s), %d prefix rule(s)",
                configuration.name,
                len(configuration.addresses),
                len(configuration.roles),
                len(configuration.users),
                len(configuration.access_control),
            )
        return ParseResult(configuration=configuration, diagnostics=self._collector.diagnostics)

    # -----------------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------------

    def _validate(self, root: Element) -> Optional[ConfigurationElement]:
        collector = self._collector

        if root.tag != ROOT_ELEMENT:
            collector.error(
                ERROR_XML_VALIDATION,
                root.position,
                f"Root element must be '{ROOT_ELEMENT}', found '{root.tag}'",
            )
            return None

        if root.namespace not in (None, NAMESPACE):
            collector.warning(
                WARN_XML_NAMESPACE,
                root.position,
                f"Unrecognized namespace '{root.namespace}' (expected '{NAMESPACE}')",
            )

        for duplicate in duplicate_single_elements(root):
            collector.error(
                ERROR_XML_VALIDATION,
                duplicate.position,
                f"Element '{duplicate.tag}' may appear at most once",
            )

        for collision in attribute_collisions(root):
            collector.error(
                ERROR_XML_VALIDATION,
                collision.position,
                f"Element '{collision.tag}' clashes with an attribute of the same name",
            )

        validated: Optional[ConfigurationElement] = None
        try:
            validated = ConfigurationElement.model_validate(element_data(root))
        except ValidationError as e:
            for error in e.errors():
                loc = error["loc"]
                element = locate(root, loc)
                where = _format_loc(loc)
                message = f"{where}: {error['msg']}" if where else error["msg"]
                collector.error(ERROR_XML_VALIDATION, element.position, message)

        # Cross references are checked on the raw tree so they are reported
        # alongside schema violations
        self._check_addresses(root)
        declared = self._check_roles(root)
        self._check_users(root, declared)
        self._check_access_control(root, declared)
        return validated

    @staticmethod
    def _section(root: Element, tag: str) -> Optional[Element]:
        elements = root.children_named(tag)
        return elements[0] if elements else None

    @staticmethod
    def _named(elements: List[Element]) -> Iterator[Tuple[str, Element]]:
        for element in elements:
            name = element.attributes.get("Name")
            if name is not None:
                yield name, element

    def _check_addresses(self, root: Element) -> None:
        section = self._section(root, "Addresses")
        if section is None:
            return
        seen = set()
        for name, element in self._named(section.children):
            if name in seen:
                self._collector.error(
                    ERROR_DUPLICATE_ADDRESS,
                    element.position,
                    f"Address '{name}' is declared more than once",
                )
            seen.add(name)

    def _check_roles(self, root: Element) -> FrozenSet[str]:
        section = self._section(root, "Roles")
        if section is None:
            return frozenset()
        seen = set()
        for name, element in self._named(section.children_named("Role")):
            if name in seen:
                self._collector.error(
                    ERROR_DUPLICATE_ROLE,
                    element.position,
                    f"Role '{name}' is declared more than once",
                )
            seen.add(name)
        return frozenset(seen)

    def _check_users(self, root: Element, declared: FrozenSet[str]) -> None:
        section = self._section(root, "Users")
        if section is None:
            return
        seen = set()
        for name, element in self._named(section.children_named("User")):
            if name in seen:
                self._collector.error(
                    ERROR_DUPLICATE_USER,
                    element.position,
                    f"User '{name}' is declared more than once",
                )
            seen.add(name)

            user_roles = self._section(element, "UserRoles")
            if user_roles is None:
                continue
            for reference, ref_element in self._named(user_roles.children_named("RoleReference")):
                if reference not in declared:
                    self._collector.error(
                        ERROR_UNDECLARED_ROLE,
                        ref_element.position,
                        f"User '{name}' references undeclared role '{reference}'",
                    )

    def _check_access_control(self, root: Element, declared: FrozenSet[str]) -> None:
        section = self._section(root, "AccessControl")
        if section is None:
            return
        for rule_element in section.children_named("ForAddressesStartingWith"):
            prefix = rule_element.attributes.get("Prefix", "")
            for grant_element in rule_element.children_named("GrantPermission"):
                references = self._named(grant_element.children_named("RoleReference"))
                for reference, ref_element in references:
                    if reference not in declared:
                        self._collector.warning(
                            WARN_UNDECLARED_ROLE,
                            ref_element.position,
                            f"Grant on prefix '{prefix}' references undeclared role '{reference}'",
                        )

    # -----------------------------------------------------------------------
    # Transformation
    # -----------------------------------------------------------------------

    def _transform(self, validated: ConfigurationElement) -> ServerConfiguration:
        return ServerConfiguration(
            name=validated.name,
            data_directory=Path(validated.data_directory),
            addresses=process_addresses(validated.addresses),
            roles=process_roles(validated.roles),
            users=process_users(validated.users),
            access_control=process_access_control(validated.access_control),
        )


def process_addresses(addresses: AddressesElement) -> FrozenSet[Address]:
    results: List[Address] = []
    for multicast in addresses.multicast:
        results.append(MulticastAddress(name=multicast.name))
    for anycast in addresses.anycast:
        results.append(AnycastAddress(name=anycast.name, queue_name=anycast.queue_name))
    return frozenset(results)


def process_roles(roles: RolesElement) -> FrozenSet[str]:
    return frozenset(role.name for role in roles.roles)


def process_users(users: UsersElement) -> Mapping[str, User]:
    """Build users, resolving password algorithms.

    Raises:
        PasswordAlgorithmError: An algorithm identifier is unknown or malformed.
    """
    results: Dict[str, User] = {}
    for user in users.users:
        hashed = user.password_hashed
        algorithm = resolve_algorithm(hashed.algorithm)
        results[user.name] = User(
            name=user.name,
            password=PasswordRecord(algorithm=algorithm, salt=hashed.salt, hash=hashed.hash),
            roles=frozenset(r.name for r in user.user_roles.role_references),
        )
    return MappingProxyType(results)


def flatten_access_control(access_control: AccessControlElement) -> Iterator[AccessRule]:
    """Yield one ``AccessRule`` per (prefix, permission, role) in document order."""
    for rule in access_control.rules:
        for grant in rule.grants:
            for reference in grant.role_references:
                yield AccessRule(prefix=rule.prefix, permission=grant.type, role=reference.name)


def process_access_control(access_control: AccessControlElement) -> Mapping[str, AddressRoleGrants]:
    return build_role_grants(flatten_access_control(access_control))


# ---------------------------------------------------------------------------
# Convenience entry points
# ---------------------------------------------------------------------------


def parse_configuration(
    document: Union[str, bytes],
    source: str = "<string>",
    on_diagnostic: Optional[DiagnosticSink] = None,
) -> ParseResult:
    """Parse a configuration document held in memory."""
    if isinstance(document, str):
        stream: Union[BinaryIO, TextIO] = io.BytesIO(document.encode("utf-8"))
    else:
        stream = io.BytesIO(document)
    return ConfigurationParser(stream, source, on_diagnostic).parse()


def parse_configuration_file(
    path: Union[str, Path],
    on_diagnostic: Optional[DiagnosticSink] = None,
) -> ParseResult:
    """Parse the configuration document at *path*."""
    path = Path(path).absolute()
    with open(path, "rb") as stream:
        return ConfigurationParser(stream, path.as_uri(), on_diagnostic).parse()
