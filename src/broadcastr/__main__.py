"""CLI entry point for Broadcastr services.

Services can run in one-shot mode (``--once``) or continuously with a
Prometheus metrics server.

Examples:
    ```bash
    python -m broadcastr backup --identity npub1... --once
    python -m broadcastr backup --config config/services/backup.yaml
    python -m broadcastr rebroadcast --backup-file backups/nostr-backup.js --once
    ```
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any, NamedTuple

from pydantic import ValidationError

from broadcastr.core import start_metrics_server
from broadcastr.core.base_service import BaseService
from broadcastr.core.exceptions import ConfigurationError
from broadcastr.core.logger import Logger, StructuredFormatter
from broadcastr.core.yaml import load_yaml
from broadcastr.models.constants import ServiceName
from broadcastr.services.backup import Backup
from broadcastr.services.rebroadcast import Rebroadcast


CONFIG_BASE = Path("config")


class ServiceEntry(NamedTuple):
    """Registry entry mapping a service to its class and default config path."""

    cls: type[BaseService[Any]]
    config_path: Path


SERVICE_REGISTRY: dict[str, ServiceEntry] = {
    ServiceName.BACKUP: ServiceEntry(Backup, CONFIG_BASE / "services" / "backup.yaml"),
    ServiceName.REBROADCAST: ServiceEntry(
        Rebroadcast, CONFIG_BASE / "services" / "rebroadcast.yaml"
    ),
}

logger = Logger("cli")


async def run_service(
    service_name: str,
    service: BaseService[Any],
    *,
    once: bool,
) -> int:
    """Run a service in one-shot or continuous mode.

    SIGINT and SIGTERM request a graceful shutdown in both modes, which also
    cancels any fetch or broadcast pass in flight.

    Returns:
        Exit code: 0 for success, 1 for failure.
    """

    def handle_signal(sig: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=sig.name)
        service.request_shutdown()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, sig)

    # One-shot mode: single cycle, no metrics server
    if once:
        try:
            async with service:
                await service.run()
            logger.info(f"{service_name}_completed")
            return 0
        except Exception as e:  # Intentionally broad: CLI error boundary for one-shot mode
            logger.error(f"{service_name}_failed", error=str(e), error_type=type(e).__name__)
            return 1

    # Continuous mode: metrics server + indefinite operation
    metrics_config = service.config.metrics
    metrics_server = await start_metrics_server(metrics_config)

    if metrics_config.enabled:
        logger.info(
            "metrics_server_started",
            host=metrics_config.host,
            port=metrics_config.port,
            path=metrics_config.path,
        )

    try:
        async with service:
            await service.run_forever()
        return 0
    except Exception as e:  # Intentionally broad: CLI error boundary for continuous mode
        logger.error(f"{service_name}_failed", error=str(e), error_type=type(e).__name__)
        return 1
    finally:
        await metrics_server.stop()
        if metrics_config.enabled:
            logger.info("metrics_server_stopped")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for the service runner."""
    parser = argparse.ArgumentParser(
        prog="broadcastr",
        description="Back up and republish a Nostr identity's events",
    )

    parser.add_argument(
        "service",
        choices=list(SERVICE_REGISTRY.keys()),
        help="Service to run",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Service config path (default: config/services/<service>.yaml)",
    )

    parser.add_argument(
        "--identity",
        help="Public key as hex or npub (overrides the config file)",
    )

    parser.add_argument(
        "--backup-file",
        type=Path,
        help="Backup file to write (backup) or read (rebroadcast)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run once and exit (default: run continuously)",
    )

    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    """Configure the root logger with structured formatting.

    Installs a ``StructuredFormatter`` on the root handler so that all
    log output -- from both ``Logger`` (with ``structured_kv`` extra) and
    plain ``logging.getLogger()`` calls in utils/services -- is unified as
    ``level name message key=value ...``.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level))


def _load_yaml_dict(path: Path) -> dict[str, Any]:
    """Load a YAML file as a dict, returning ``{}`` if the file does not exist."""
    if not path.exists():
        logger.warning("config_not_found", path=str(path))
        return {}
    return load_yaml(str(path))


def apply_overrides(service_name: str, service_dict: dict[str, Any], args: argparse.Namespace) -> None:
    """Merge ``--identity`` and ``--backup-file`` into the service configuration."""
    if args.identity:
        service_dict["identity"] = args.identity

    if args.backup_file is None:
        return

    if service_name == ServiceName.BACKUP:
        output = service_dict.setdefault("output", {})
        output["directory"] = str(args.backup_file.parent)
        output["filename"] = args.backup_file.name
    else:
        service_dict["backup_file"] = str(args.backup_file)


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args, build the service, and run it."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    entry = SERVICE_REGISTRY[args.service]
    config_path = args.config or entry.config_path

    try:
        service_dict = _load_yaml_dict(config_path)
        apply_overrides(args.service, service_dict, args)
        service = entry.cls.from_dict(service_dict)
    except (ConfigurationError, ValidationError) as e:
        logger.error("config_invalid", path=str(config_path), error=str(e))
        return 2

    try:
        return await run_service(args.service, service, once=args.once)
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
