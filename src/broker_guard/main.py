"""
Broker Guard CLI entry point.

Usage:
    broker-guard create-hashed-password --password TEXT    # Print a PasswordHashed element
    broker-guard check  --file server.xml                   # Validate a configuration file
    broker-guard server --file server.xml                   # Run the configured broker
"""

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from .config import get_settings
from .exceptions import BrokerError, ConfigurationError, PasswordError
from .observability.logging import configure_logging
from .parsing.diagnostics import log_diagnostic
from .parsing.parser import parse_configuration_file
from .security.passwords import default_algorithm

logger = logging.getLogger(__name__)

SUCCESS = 0
FAILURE = 1

_PASSWORD_TEMPLATE = """<PasswordHashed Algorithm="{algorithm}"
                Salt="{salt}"
                Hash="{hash}"/>"""


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def cmd_create_hashed_password(args) -> int:
    """Hash a password and print the configuration snippet."""
    try:
        algorithm = default_algorithm(args.algorithm)
        record = algorithm.create_hashed(args.password)
    except PasswordError as e:
        logger.error("%s", e)
        return FAILURE

    print(_PASSWORD_TEMPLATE.format(
        algorithm=record.algorithm_id,
        salt=record.salt,
        hash=record.hash,
    ))
    return SUCCESS


def cmd_check(args) -> int:
    """Parse a configuration file and report diagnostics."""
    try:
        result = parse_configuration_file(args.file, log_diagnostic)
    except OSError as e:
        logger.error("Cannot read %s: %s", args.file, e)
        return FAILURE
    except ConfigurationError as e:
        logger.error("%s", e)
        return FAILURE

    configuration = result.configuration
    print(
        f"{configuration.name}: {len(configuration.addresses)} address(es), "
        f"{len(configuration.roles)} role(s), {len(configuration.users)} user(s), "
        f"{len(configuration.access_control)} prefix rule(s)"
    )
    return SUCCESS


def cmd_server(args) -> int:
    """Run the broker until interrupted. SIGHUP reloads the policy."""
    from .broker.runtime import ServerRuntime

    runtime = ServerRuntime(args.file, get_settings(), log_diagnostic)
    try:
        runtime.start()
    except OSError as e:
        logger.error("Cannot read %s: %s", args.file, e)
        return FAILURE
    except (ConfigurationError, BrokerError) as e:
        logger.error("%s", e)
        return FAILURE

    stopped = threading.Event()

    def _stop(signum, frame):
        stopped.set()

    def _reload(signum, frame):
        try:
            runtime.reload()
        except (OSError, ConfigurationError) as e:
            logger.error("Reload failed, keeping previous configuration: %s", e)

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, _reload)

    try:
        stopped.wait()
    finally:
        runtime.stop()
    return SUCCESS


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="broker-guard",
        description="Role-based address access control for an embedded message broker",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    p_hash = sub.add_parser("create-hashed-password", help="Create a hashed password")
    p_hash.add_argument("--password", required=True, help="The password text")
    p_hash.add_argument(
        "--algorithm",
        default=None,
        help="Algorithm identifier (default: settings password_algorithm)",
    )

    p_check = sub.add_parser("check", help="Validate a configuration file")
    p_check.add_argument("--file", required=True, help="The configuration file")

    p_server = sub.add_parser("server", help="Run the server")
    p_server.add_argument("--file", required=True, help="The configuration file")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(
        environment=settings.environment,
        log_level="DEBUG" if args.verbose else settings.get_log_level(),
    )

    commands = {
        "create-hashed-password": cmd_create_hashed_password,
        "check": cmd_check,
        "server": cmd_server,
    }

    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return FAILURE
    return handler(args)


if __name__ == "__main__":
    sys.exit(main())
