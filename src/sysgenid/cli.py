"""sysgenid command line.

Usage:
    sysgenid serve                      # run the coordinator service
    sysgenid status                     # print generation and outdated watchers
    sysgenid trigger --min-gen 5        # bump the generation
    sysgenid overseer                   # quiesce, bump, wait for ready, unquiesce
    sysgenid watch --iterations 10      # run the example watcher

Global options (--config, --bus, --log-level) override SYSGENID_* env vars,
which override the config file.
"""

from __future__ import annotations

import argparse
import logging
import sys
from contextlib import contextmanager

from jeepney.io.blocking import open_dbus_connection
from jeepney.wrappers import DBusErrorResponse

from sysgenid import bus
from sysgenid.config import BUSES, LOG_LEVELS, Settings, load_settings
from sysgenid.coordinator import GENERATION_MAX
from sysgenid.errors import ConfigError, InvariantViolation, SysGenIdError
from sysgenid.overseer import Overseer
from sysgenid.proxy import SysGenIdProxy
from sysgenid.watcher import Watcher

logger = logging.getLogger("sysgenid.cli")


def cmd_serve(args, settings: Settings) -> int:
    try:
        bus.run(settings)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


def cmd_status(args, settings: Settings) -> int:
    with _connect(settings) as conn:
        proxy = SysGenIdProxy(conn, settings.call_timeout, settings.bus_name)
        print(f"generation: {proxy.get_generation()}")
        print(f"outdated watchers: {proxy.count_outdated_watchers()}")
    return 0


def cmd_trigger(args, settings: Settings) -> int:
    with _connect(settings) as conn:
        proxy = SysGenIdProxy(conn, settings.call_timeout, settings.bus_name)
        proxy.trigger_update(args.min_gen)
        print(proxy.get_generation())
    return 0


def cmd_overseer(args, settings: Settings) -> int:
    with _connect(settings) as conn:
        generation = Overseer(conn, settings).run(args.min_gen)
    print(generation)
    return 0


def cmd_watch(args, settings: Settings) -> int:
    with _connect(settings) as conn:
        watcher = Watcher(conn, settings, tracking=not args.untracked)
        try:
            watcher.run(args.iterations)
        except KeyboardInterrupt:
            logger.info("Interrupted")
        if watcher.tracking:
            watcher.detach()
    return 0


def u32(text: str) -> int:
    """argparse type for a D-Bus 'u' argument."""
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer {text!r}") from None
    if not 0 <= value <= GENERATION_MAX:
        raise argparse.ArgumentTypeError(f"{value} is outside 0..{GENERATION_MAX}")
    return value


@contextmanager
def _connect(settings: Settings):
    conn = open_dbus_connection(bus=settings.bus)
    try:
        yield conn
    finally:
        conn.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sysgenid", description="System generation ID coordinator")
    parser.add_argument("--config", help="YAML settings file")
    parser.add_argument("--bus", type=str.upper, choices=BUSES, help="message bus to use")
    parser.add_argument("--bus-name", help="well-known name of the service")
    parser.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS)
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("serve", help="run the coordinator service")
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser("status", help="show generation and outdated watcher count")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("trigger", help="trigger a new system generation")
    p.add_argument("--min-gen", type=u32, default=0)
    p.set_defaults(func=cmd_trigger)

    p = sub.add_parser("overseer", help="run the example overseer cycle")
    p.add_argument("--min-gen", type=u32, default=0)
    p.add_argument("--ready-timeout", type=float)
    p.set_defaults(func=cmd_overseer)

    p = sub.add_parser("watch", help="run the example watcher")
    p.add_argument("--untracked", action="store_true", help="listen without being tracked")
    p.add_argument("--iterations", type=int, help="stop after N work ticks")
    p.add_argument("--work-interval", type=float)
    p.set_defaults(func=cmd_watch)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(
            args.config,
            bus=args.bus,
            bus_name=args.bus_name,
            log_level=args.log_level,
            ready_timeout=getattr(args, "ready_timeout", None),
            work_interval=getattr(args, "work_interval", None),
        )
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    try:
        return args.func(args, settings)
    except DBusErrorResponse as e:
        print(f"Error: {e.name}: {' '.join(map(str, e.data))}", file=sys.stderr)
        return 1
    except InvariantViolation:
        raise
    except (SysGenIdError, TimeoutError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
