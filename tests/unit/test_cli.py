"""Tests for the command line entry point."""

import logging
import re

import pytest

from broker_guard.main import FAILURE, SUCCESS, build_parser, main
from broker_guard.security.passwords import resolve_algorithm


@pytest.fixture(autouse=True)
def restore_root_logger():
    """``main`` reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


SNIPPET = re.compile(
    r'<PasswordHashed Algorithm="(?P<algorithm>[^"]+)"\s+'
    r'Salt="(?P<salt>[^"]*)"\s+'
    r'Hash="(?P<hash>[^"]+)"/>'
)


class TestCreateHashedPassword:
    """``create-hashed-password`` prints a ready-to-paste element."""

    def test_prints_verifiable_snippet(self, capsys):
        code = main([
            "create-hashed-password",
            "--password", "swordfish",
            "--algorithm", "PBKDF2WithHmacSHA256:1000:256",
        ])
        assert code == SUCCESS
        match = SNIPPET.search(capsys.readouterr().out)
        assert match is not None
        algorithm = resolve_algorithm(match["algorithm"])
        assert algorithm.verify("swordfish", match["salt"], match["hash"])

    def test_default_algorithm_from_settings(self, capsys, monkeypatch):
        monkeypatch.setenv("BROKER_GUARD_PASSWORD_ALGORITHM", "bcrypt:4")
        assert main(["create-hashed-password", "--password", "pw"]) == SUCCESS
        match = SNIPPET.search(capsys.readouterr().out)
        assert match["algorithm"] == "bcrypt:4"

    def test_unknown_algorithm_fails(self, capsys):
        code = main(["create-hashed-password", "--password", "pw", "--algorithm", "MD5"])
        assert code == FAILURE
        assert capsys.readouterr().out == ""

    def test_password_required(self):
        with pytest.raises(SystemExit):
            main(["create-hashed-password"])


class TestCheck:
    """``check`` validates a file and summarizes it."""

    def test_valid_file(self, config_file, capsys):
        assert main(["check", "--file", str(config_file)]) == SUCCESS
        out = capsys.readouterr().out
        assert out.strip() == (
            "example: 2 address(es), 3 role(s), 2 user(s), 3 prefix rule(s)"
        )

    def test_invalid_file(self, tmp_path, capsys):
        path = tmp_path / "bad.xml"
        path.write_text("<Configuration/>", encoding="utf-8")
        assert main(["check", "--file", str(path)]) == FAILURE
        assert capsys.readouterr().out == ""

    def test_missing_file(self, tmp_path):
        assert main(["check", "--file", str(tmp_path / "absent.xml")]) == FAILURE


class TestParser:
    """Argument parsing."""

    def test_no_command_prints_help(self, capsys):
        assert main([]) == FAILURE
        assert "broker-guard" in capsys.readouterr().out

    def test_server_requires_file(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["server"])

    def test_verbose_flag(self):
        args = build_parser().parse_args(["-v", "check", "--file", "x.xml"])
        assert args.verbose is True
        assert args.command == "check"

    def test_server_without_broker_fails(self, config_file):
        assert main(["server", "--file", str(config_file)]) == FAILURE
