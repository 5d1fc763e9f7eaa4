"""Configuration document schema.

The schema is expressed as pydantic models over a plain-data rendition of
the element tree: attributes become string fields, child elements become
nested models (single-occurrence elements) or lists (repeated elements).
Field aliases are the element and attribute names used in the document,
so pydantic error locations can be walked back to the offending element.
"""

from typing import Any, Dict, List, Union

from pydantic import BaseModel, ConfigDict, Field

from ..models.permission import Permission
from .document import Element

NAMESPACE = "urn:broker-guard:configuration:1"
ROOT_ELEMENT = "Configuration"

# Elements that may appear at most once below their parent. Every other
# child element is collected into a list.
SINGLE_ELEMENTS = frozenset({
    "Addresses",
    "Roles",
    "Users",
    "AccessControl",
    "PasswordHashed",
    "UserRoles",
})


class _SchemaElement(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


# ---------------------------------------------------------------------------
# Addresses
# ---------------------------------------------------------------------------


class MulticastElement(_SchemaElement):
    name: str = Field(alias="Name", min_length=1)


class AnycastElement(_SchemaElement):
    name: str = Field(alias="Name", min_length=1)
    queue_name: str = Field(alias="QueueName", min_length=1)


class AddressesElement(_SchemaElement):
    multicast: List[MulticastElement] = Field(default_factory=list, alias="Multicast")
    anycast: List[AnycastElement] = Field(default_factory=list, alias="Anycast")


# ---------------------------------------------------------------------------
# Roles and users
# ---------------------------------------------------------------------------


class RoleElement(_SchemaElement):
    name: str = Field(alias="Name", min_length=1)


class RolesElement(_SchemaElement):
    roles: List[RoleElement] = Field(default_factory=list, alias="Role")


class RoleReferenceElement(_SchemaElement):
    name: str = Field(alias="Name", min_length=1)


class PasswordHashedElement(_SchemaElement):
    algorithm: str = Field(alias="Algorithm", min_length=1)
    salt: str = Field(alias="Salt")
    hash: str = Field(alias="Hash", min_length=1)


class UserRolesElement(_SchemaElement):
    role_references: List[RoleReferenceElement] = Field(
        default_factory=list, alias="RoleReference"
    )


class UserElement(_SchemaElement):
    name: str = Field(alias="Name", min_length=1)
    password_hashed: PasswordHashedElement = Field(alias="PasswordHashed")
    user_roles: UserRolesElement = Field(
        default_factory=UserRolesElement, alias="UserRoles"
    )


class UsersElement(_SchemaElement):
    users: List[UserElement] = Field(default_factory=list, alias="User")


# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------


class GrantPermissionElement(_SchemaElement):
    type: Permission = Field(alias="Type")
    role_references: List[RoleReferenceElement] = Field(
        alias="RoleReference", min_length=1
    )


class ForAddressesStartingWithElement(_SchemaElement):
    prefix: str = Field(alias="Prefix")
    grants: List[GrantPermissionElement] = Field(
        default_factory=list, alias="GrantPermission"
    )


class AccessControlElement(_SchemaElement):
    rules: List[ForAddressesStartingWithElement] = Field(
        default_factory=list, alias="ForAddressesStartingWith"
    )


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


class ConfigurationElement(_SchemaElement):
    name: str = Field(alias="Name", min_length=1)
    data_directory: str = Field(alias="DataDirectory", min_length=1)
    addresses: AddressesElement = Field(default_factory=AddressesElement, alias="Addresses")
    roles: RolesElement = Field(default_factory=RolesElement, alias="Roles")
    users: UsersElement = Field(default_factory=UsersElement, alias="Users")
    access_control: AccessControlElement = Field(
        default_factory=AccessControlElement, alias="AccessControl"
    )


# ---------------------------------------------------------------------------
# Element tree -> plain data
# ---------------------------------------------------------------------------


def element_data(element: Element) -> Dict[str, Any]:
    """Render *element* as the plain data the schema models validate.

    A single-occurrence element that appears more than once keeps its first
    occurrence here; ``duplicate_single_elements`` reports the others. A
    child element named like one of its parent's attributes is left out;
    ``attribute_collisions`` reports it.
    """
    data: Dict[str, Any] = dict(element.attributes)
    for child in element.children:
        if child.tag in element.attributes:
            continue
        rendered = element_data(child)
        if child.tag in SINGLE_ELEMENTS:
            data.setdefault(child.tag, rendered)
        else:
            data.setdefault(child.tag, []).append(rendered)
    return data


def duplicate_single_elements(element: Element) -> List[Element]:
    """Every repeated occurrence of a single-occurrence element, in document order."""
    found: List[Element] = []
    seen = set()
    for child in element.children:
        if child.tag in SINGLE_ELEMENTS:
            if child.tag in seen:
                found.append(child)
            seen.add(child.tag)
        found.extend(duplicate_single_elements(child))
    return found


def attribute_collisions(element: Element) -> List[Element]:
    """Child elements whose tag repeats an attribute name of their parent."""
    found: List[Element] = []
    for child in element.children:
        if child.tag in element.attributes:
            found.append(child)
        found.extend(attribute_collisions(child))
    return found


def locate(root: Element, loc: tuple) -> Element:
    """Resolve a pydantic error location to the deepest matching element."""
    current = root
    pending: Union[str, None] = None
    for part in loc:
        if isinstance(part, int):
            if pending is None:
                break
            candidates = current.children_named(pending)
            if part >= len(candidates):
                break
            current = candidates[part]
            pending = None
        elif part in SINGLE_ELEMENTS:
            candidates = current.children_named(part)
            if not candidates:
                break
            current = candidates[0]
        elif current.children_named(part):
            pending = part
        else:
            # An attribute, or something missing: report at the element
            break
    if pending is not None:
        return current.children_named(pending)[0]
    return current
