"""Test configuration and fixtures."""

import os

import pytest

# Set test environment variables BEFORE importing the package
os.environ["ENVIRONMENT"] = "test"

from broker_guard.config import get_settings
from broker_guard.parsing.parser import parse_configuration
from broker_guard.security.passwords import Pbkdf2HmacSha256


# Low iteration count keeps the suite fast; parameters are part of the identifier
FAST_PBKDF2 = Pbkdf2HmacSha256(iterations=1000, key_length=256)

ALICE_PASSWORD = "correct horse battery staple"
BOB_PASSWORD = "hunter2"

_ALICE = FAST_PBKDF2.create_hashed(ALICE_PASSWORD)
_BOB = FAST_PBKDF2.create_hashed(BOB_PASSWORD)

SAMPLE_DOCUMENT = f"""<?xml version="1.0" encoding="UTF-8"?>
<Configuration xmlns="urn:broker-guard:configuration:1"
               Name="example"
               DataDirectory="/var/lib/broker">
  <Addresses>
    <Multicast Name="orders.events"/>
    <Anycast Name="invoices" QueueName="invoices.queue"/>
  </Addresses>
  <Roles>
    <Role Name="sender"/>
    <Role Name="reader"/>
    <Role Name="admin"/>
  </Roles>
  <Users>
    <User Name="alice">
      <PasswordHashed Algorithm="{_ALICE.algorithm_id}"
                      Salt="{_ALICE.salt}"
                      Hash="{_ALICE.hash}"/>
      <UserRoles>
        <RoleReference Name="sender"/>
      </UserRoles>
    </User>
    <User Name="bob">
      <PasswordHashed Algorithm="{_BOB.algorithm_id}"
                      Salt="{_BOB.salt}"
                      Hash="{_BOB.hash}"/>
      <UserRoles>
        <RoleReference Name="reader"/>
        <RoleReference Name="admin"/>
      </UserRoles>
    </User>
  </Users>
  <AccessControl>
    <ForAddressesStartingWith Prefix="orders.">
      <GrantPermission Type="send">
        <RoleReference Name="sender"/>
      </GrantPermission>
      <GrantPermission Type="consume">
        <RoleReference Name="reader"/>
      </GrantPermission>
    </ForAddressesStartingWith>
    <ForAddressesStartingWith Prefix="orders.audit.">
      <GrantPermission Type="browse">
        <RoleReference Name="admin"/>
      </GrantPermission>
    </ForAddressesStartingWith>
    <ForAddressesStartingWith Prefix="">
      <GrantPermission Type="manage">
        <RoleReference Name="admin"/>
      </GrantPermission>
    </ForAddressesStartingWith>
  </AccessControl>
</Configuration>
"""


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Each test sees settings built from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def sample_document() -> str:
    return SAMPLE_DOCUMENT


@pytest.fixture
def sample_configuration():
    return parse_configuration(SAMPLE_DOCUMENT, "sample.xml").configuration


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "server.xml"
    path.write_text(SAMPLE_DOCUMENT, encoding="utf-8")
    return path
