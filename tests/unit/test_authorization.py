"""Tests for the authorization decision engine."""

import logging
from pathlib import Path
from types import MappingProxyType

import pytest

from broker_guard.models.configuration import AccessRule, ServerConfiguration
from broker_guard.models.permission import Permission
from broker_guard.models.user import PasswordRecord, User
from broker_guard.security.authorization import SecurityManager
from broker_guard.security.grants import build_role_grants
from tests.conftest import ALICE_PASSWORD, BOB_PASSWORD, FAST_PBKDF2


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _configuration(users, rules, roles=None) -> ServerConfiguration:
    user_map = {u.name: u for u in users}
    return ServerConfiguration(
        name="test",
        data_directory=Path("data"),
        addresses=frozenset(),
        roles=frozenset(roles or {r for u in users for r in u.roles}),
        users=MappingProxyType(user_map),
        access_control=build_role_grants(rules),
    )


def _user(name: str, password: str, *roles: str) -> User:
    return User(name=name, password=FAST_PBKDF2.create_hashed(password), roles=frozenset(roles))


@pytest.fixture
def orders_manager():
    """User ``u`` with role ``R`` granted SEND on ``orders.``."""
    user = _user("u", "pw", "R")
    return SecurityManager(_configuration([user], [AccessRule("orders.", Permission.SEND, "R")]))


# ---------------------------------------------------------------------------
# authorize
# ---------------------------------------------------------------------------


class TestAuthorize:
    """The four canonical cases plus unknown users."""

    def test_allow_matching_prefix_and_permission(self, orders_manager):
        assert orders_manager.authorize("u", "pw", "orders.new", Permission.SEND) is True

    def test_deny_other_permission(self, orders_manager):
        assert orders_manager.authorize("u", "pw", "orders.new", Permission.CONSUME) is False

    def test_deny_wrong_password(self, orders_manager):
        assert orders_manager.authorize("u", "wrong", "orders.new", Permission.SEND) is False

    def test_deny_no_matching_prefix(self, orders_manager):
        assert orders_manager.authorize("u", "pw", "invoices.new", Permission.SEND) is False

    def test_prefix_is_literal_string_prefix(self, orders_manager):
        assert orders_manager.authorize("u", "pw", "orders.", Permission.SEND) is True
        assert orders_manager.authorize("u", "pw", "orders", Permission.SEND) is False
        assert orders_manager.authorize("u", "pw", "xorders.new", Permission.SEND) is False

    @pytest.mark.parametrize("permission", list(Permission))
    def test_unknown_user_denied_without_exception(self, orders_manager, permission):
        assert orders_manager.authorize("ghost", "anything", "orders.new", permission) is False

    def test_none_credentials_denied(self, orders_manager):
        assert orders_manager.authorize(None, "pw", "orders.new", Permission.SEND) is False
        assert orders_manager.authorize("u", None, "orders.new", Permission.SEND) is False

    def test_role_not_held_denied(self):
        user = _user("u", "pw", "other")
        manager = SecurityManager(
            _configuration([user], [AccessRule("orders.", Permission.SEND, "R")], roles={"R", "other"})
        )
        assert manager.authorize("u", "pw", "orders.new", Permission.SEND) is False

    def test_malformed_stored_hash_denied(self):
        broken = User(
            name="u",
            password=PasswordRecord(algorithm=FAST_PBKDF2, salt="not-hex", hash="also-not-hex"),
            roles=frozenset({"R"}),
        )
        manager = SecurityManager(
            _configuration([broken], [AccessRule("orders.", Permission.SEND, "R")])
        )
        assert manager.authorize("u", "pw", "orders.new", Permission.SEND) is False

    def test_verification_error_denied_and_logged(self, caplog):
        class Exploding:
            identifier = "exploding"

            def verify(self, plaintext, salt, hashed):
                raise RuntimeError("boom")

        user = User(
            name="u",
            password=PasswordRecord(algorithm=Exploding(), salt="", hash=""),
            roles=frozenset({"R"}),
        )
        manager = SecurityManager(
            _configuration([user], [AccessRule("orders.", Permission.SEND, "R")])
        )
        with caplog.at_level(logging.ERROR):
            assert manager.authorize("u", "pw", "orders.new", Permission.SEND) is False
        assert "Password verification error" in caplog.text

    def test_denial_cause_logged_not_returned(self, orders_manager, caplog):
        with caplog.at_level(logging.INFO, logger="broker_guard.security.authorization"):
            result = orders_manager.authorize("ghost", "pw", "orders.new", Permission.SEND)
        assert result is False
        assert "unknown user" in caplog.text

    def test_configuration_unchanged_by_calls(self, orders_manager):
        before = orders_manager.configuration
        orders_manager.authorize("u", "pw", "orders.new", Permission.SEND)
        orders_manager.authorize("ghost", "pw", "orders.new", Permission.SEND)
        assert orders_manager.configuration is before

    def test_plain_string_permission(self, orders_manager):
        """Brokers may pass the permission's string value."""
        assert orders_manager.authorize("u", "pw", "orders.new", "send") is True
        assert orders_manager.authorize("u", "pw", "orders.new", "consume") is False
        assert orders_manager.authorize("u", "pw", "invoices.new", "send") is False
        assert orders_manager.authorize_roles({"R"}, "orders.new", "send") is False
        assert orders_manager.validate_user_and_role("u", "pw", {"R"}, "send") is False

    def test_unknown_permission_denied(self, orders_manager):
        assert orders_manager.authorize("u", "pw", "orders.new", "fly") is False
        assert orders_manager.authorize("u", "pw", "orders.new", None) is False
        assert orders_manager.authorize_roles({"R"}, "orders.new", "fly", authenticated=True) is False

    def test_requires_configuration(self):
        with pytest.raises(TypeError):
            SecurityManager(None)


class TestOverlappingPrefixes:
    """Grants are unioned across every matching prefix."""

    @pytest.fixture
    def manager(self):
        user = _user("u", "pw", "R")
        rules = [
            AccessRule("orders.", Permission.SEND, "R"),
            AccessRule("orders.audit.", Permission.BROWSE, "R"),
            AccessRule("orders.audit.", Permission.CONSUME, "other"),
        ]
        return SecurityManager(_configuration([user], rules, roles={"R", "other"}))

    def test_shorter_prefix_grant_applies_under_longer_prefix(self, manager):
        """Only the shorter prefix grants SEND; it still applies."""
        assert manager.authorize("u", "pw", "orders.audit.x", Permission.SEND) is True

    def test_longer_prefix_grant_applies(self, manager):
        assert manager.authorize("u", "pw", "orders.audit.x", Permission.BROWSE) is True

    def test_longer_prefix_grant_not_leaked_to_shorter(self, manager):
        assert manager.authorize("u", "pw", "orders.x", Permission.BROWSE) is False

    def test_other_roles_grants_ignored(self, manager):
        assert manager.authorize("u", "pw", "orders.audit.x", Permission.CONSUME) is False

    def test_result_independent_of_rule_order(self):
        user = _user("u", "pw", "R")
        rules = [
            AccessRule("a.", Permission.SEND, "R"),
            AccessRule("a.b.", Permission.CONSUME, "R"),
            AccessRule("", Permission.MANAGE, "R"),
        ]
        forward = SecurityManager(_configuration([user], rules))
        backward = SecurityManager(_configuration([user], list(reversed(rules))))
        for address in ("a.b.c", "a.c", "z"):
            for permission in Permission:
                assert forward.authorize("u", "pw", address, permission) == backward.authorize(
                    "u", "pw", address, permission
                )

    def test_grants_for_unions_matching_prefixes(self, manager):
        grants = manager.grants_for("orders.audit.x")
        assert grants["R"] == frozenset({Permission.SEND, Permission.BROWSE})
        assert grants["other"] == frozenset({Permission.CONSUME})
        assert dict(manager.grants_for("invoices")) == {}

    def test_longest_prefix_reported(self, manager, caplog):
        with caplog.at_level(logging.DEBUG, logger="broker_guard.security.authorization"):
            manager.authorize("u", "pw", "orders.audit.x", Permission.BROWSE)
        assert "via prefix 'orders.audit.'" in caplog.text


class TestSampleDocument:
    """Decisions over the shared sample configuration."""

    def test_alice_sends_orders(self, sample_configuration):
        manager = SecurityManager(sample_configuration)
        assert manager.authorize("alice", ALICE_PASSWORD, "orders.new", Permission.SEND)
        assert not manager.authorize("alice", ALICE_PASSWORD, "orders.new", Permission.CONSUME)

    def test_bob_manages_everything(self, sample_configuration):
        manager = SecurityManager(sample_configuration)
        assert manager.authorize("bob", BOB_PASSWORD, "anything", Permission.MANAGE)
        assert manager.authorize("bob", BOB_PASSWORD, "orders.audit.1", Permission.BROWSE)
        assert not manager.authorize("bob", BOB_PASSWORD, "orders.1", Permission.BROWSE)

    def test_passwords_are_per_user(self, sample_configuration):
        manager = SecurityManager(sample_configuration)
        assert not manager.authorize("alice", BOB_PASSWORD, "orders.new", Permission.SEND)


# ---------------------------------------------------------------------------
# Secondary forms and broker overloads
# ---------------------------------------------------------------------------


class TestBrokerCallbacks:
    """Overloads used by the broker's security callback."""

    def test_validate_user(self, orders_manager):
        assert orders_manager.validate_user("u", "pw") is True
        assert orders_manager.validate_user("u", "nope") is False
        assert orders_manager.validate_user("ghost", "pw") is False
        assert orders_manager.validate_user(None, None) is False

    def test_validate_user_with_certificates(self, orders_manager):
        assert orders_manager.validate_user_with_certificates("u", "pw", [object()]) is True
        assert orders_manager.validate_user_with_certificates("u", "nope", None) is False

    def test_legacy_role_check_always_denies(self, orders_manager):
        assert orders_manager.validate_user_and_role("u", "pw", {"R"}, Permission.SEND) is False

    def test_address_check_matches_authorize(self, orders_manager):
        assert orders_manager.validate_user_and_role_for_address(
            "u", "pw", set(), Permission.SEND, "orders.new", connection=object()
        ) is True
        assert orders_manager.validate_user_and_role_for_address(
            "u", "pw", {"R"}, Permission.SEND, "invoices.new"
        ) is False

    def test_broker_supplied_roles_ignored(self, orders_manager):
        """Roles come from the configuration, not the caller."""
        assert orders_manager.validate_user_and_role_for_address(
            "u", "pw", {"R", "admin"}, Permission.MANAGE, "orders.new"
        ) is False


class TestAuthorizeRoles:
    """Role-set decisions without a password check."""

    def test_denies_unless_authenticated(self, orders_manager):
        assert orders_manager.authorize_roles({"R"}, "orders.new", Permission.SEND) is False

    def test_authenticated_caller(self, orders_manager):
        assert orders_manager.authorize_roles(
            {"R"}, "orders.new", Permission.SEND, authenticated=True
        ) is True
        assert orders_manager.authorize_roles(
            {"R"}, "orders.new", Permission.CONSUME, authenticated=True
        ) is False
        assert orders_manager.authorize_roles(
            set(), "orders.new", Permission.SEND, authenticated=True
        ) is False
