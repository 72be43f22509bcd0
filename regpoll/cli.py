"""
regpoll command line

Usage:
    # Poll the devices in a config file and serve the HTTP API
    regpoll run --config config.yaml

    # Print the parsed configuration and exit
    regpoll run --config config.yaml --dry-run

    # One-shot read, JSON on stdout
    regpoll read --host 192.168.1.10 --unit 1 --address 0 --count 10

    # Serve fixed registers for local testing
    regpoll simulate --port 5020 --values 42,255
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime, timezone

from regpoll.common.config import DeviceConfig, PollRequest, load_config_file
from regpoll.common.exceptions import ConfigError, DeviceError
from regpoll.common.logging_setup import configure_service_loggers, get_service_logger

logger = get_service_logger("cli")

SERVICE_LOGGERS = [
    "cli",
    "device",
    "device.api",
    "device.exchange",
    "device.manager",
    "device.readings",
    "scheduler",
    "simulator",
]


def _parse_values(text: str) -> list[int]:
    try:
        return [int(v.strip(), 0) for v in text.split(",") if v.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid register list: {text!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="regpoll",
        description="Modbus TCP holding-register poller",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    run_parser = subparsers.add_parser("run", help="Poll configured devices and serve the API")
    run_parser.add_argument(
        "--config", "-c",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print configuration and exit without polling",
    )

    read_parser = subparsers.add_parser("read", help="Read holding registers once")
    read_parser.add_argument("--host", required=True, help="Device host or IP")
    read_parser.add_argument("--port", type=int, default=502, help="TCP port (default: 502)")
    read_parser.add_argument("--unit", type=int, default=1, help="Unit id (default: 1)")
    read_parser.add_argument("--address", type=int, default=0, help="Start address (default: 0)")
    read_parser.add_argument("--count", type=int, default=10, help="Register count (default: 10)")
    read_parser.add_argument("--timeout", type=float, default=3.0, help="Timeout in seconds (default: 3)")

    sim_parser = subparsers.add_parser("simulate", help="Run a register simulator")
    sim_parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    sim_parser.add_argument("--port", type=int, default=5020, help="TCP port (default: 5020)")
    sim_parser.add_argument(
        "--unit", type=int, action="append", dest="units",
        help="Unit id to answer (repeatable, default: 1)",
    )
    sim_parser.add_argument("--address", type=int, default=0, help="First register address (default: 0)")
    sim_parser.add_argument(
        "--values",
        type=_parse_values,
        default=list(range(10)),
        help="Comma-separated register values (default: 0..9)",
    )

    return parser


async def read_once(
    host: str,
    port: int,
    unit_id: int,
    address: int,
    count: int,
    timeout: float,
) -> dict:
    """
    Single exchange with a device.

    Returns:
        {"success": bool, "host": str, "port": int, "unit_id": int,
         "address": int, "timestamp": str, "registers": list | None,
         "error": str | None}
    """
    from regpoll.services.device.exchange import ModbusTcpExchange

    result = {
        "success": False,
        "host": host,
        "port": port,
        "unit_id": unit_id,
        "address": address,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "registers": None,
        "error": None,
    }

    try:
        device = DeviceConfig(name=host, host=host, port=port, unit_id=unit_id)
        request = PollRequest(start_address=address, quantity=count)
        result["registers"] = await ModbusTcpExchange().exchange(device, request, timeout)
        result["success"] = True
    except (ConfigError, DeviceError) as e:
        result["error"] = str(e)

    return result


def cmd_run(args: argparse.Namespace) -> int:
    from regpoll.services.device.service import PollingService

    try:
        config = load_config_file(args.config)
    except ConfigError as e:
        logger.error(str(e))
        return 1

    if args.dry_run:
        print(json.dumps(config.to_dict(), indent=2))
        return 0

    configure_service_loggers(
        SERVICE_LOGGERS,
        config.service.log_level,
        config.service.log_format,
    )

    service = PollingService(settings=config.polling, devices=config.devices)
    logger.info(f"Starting poller with {len(config.devices)} devices from {args.config}")

    try:
        asyncio.run(service.serve(config.service))
    except KeyboardInterrupt:
        logger.info("Stopped by user")
    return 0


def cmd_read(args: argparse.Namespace) -> int:
    result = asyncio.run(read_once(
        args.host,
        args.port,
        args.unit,
        args.address,
        args.count,
        args.timeout,
    ))
    print(json.dumps(result))
    return 0 if result["success"] else 1


def cmd_simulate(args: argparse.Namespace) -> int:
    from regpoll.simulator import RegisterSimulator

    try:
        simulator = RegisterSimulator(
            values=args.values,
            unit_ids=args.units or [1],
            host=args.host,
            port=args.port,
            start_address=args.address,
        )
    except ValueError as e:
        logger.error(f"Invalid simulator settings: {e}")
        return 1

    try:
        asyncio.run(simulator.run())
    except KeyboardInterrupt:
        logger.info("Simulator stopped by user")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "run": cmd_run,
        "read": cmd_read,
        "simulate": cmd_simulate,
    }
    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
