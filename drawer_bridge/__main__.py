"""
Entry point for Drawer Bridge.

Usage:
    python -m drawer_bridge serve
    python -m drawer_bridge open
    python -m drawer_bridge configure --address 192.168.1.45 --channel 0
    python -m drawer_bridge --config ./drawer_config.json test-open --address simulate
    drawer-bridge set-pin  (if installed via pip)
"""

import argparse
import asyncio
import json
import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from . import __version__
from .config import DEFAULT_BRIDGE_PORT, DEVICE_FIELDS, ConfigStore, get_config_path, get_log_dir
from .console import ConsoleNotifier, ConsolePrompt
from .controller import DrawerController

LOG_FORMAT = '%(asctime)s [%(name)s] %(levelname)s: %(message)s'


def setup_logging(level: str = 'info', config_path: Path | None = None):
    """Configure logging: console plus a daily rotating file next to the config."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        datefmt='%H:%M:%S',
    )

    try:
        log_file = get_log_dir(config_path) / 'drawer_bridge.log'
        file_handler = TimedRotatingFileHandler(
            log_file,
            when='midnight',
            backupCount=7,
            encoding='utf-8',
            delay=True,
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(numeric_level)
        logging.getLogger().addHandler(file_handler)
    except OSError as e:
        logging.getLogger('drawer_bridge').warning(f"File logging disabled: {e}")

    # Quiet down noisy loggers
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)


def add_device_options(parser: argparse.ArgumentParser):
    parser.add_argument('--address', dest='printer_address', help='Printer IP/hostname, or "simulate"')
    parser.add_argument('--printer-port', dest='printer_port', type=int, help='Printer raw port (default 9100)')
    parser.add_argument('--channel', dest='drawer_channel', type=int, choices=[0, 1], help='Drawer channel')
    parser.add_argument('--pulse-on', dest='pulse_on', type=int, help='Pulse on time t1 (0-255)')
    parser.add_argument('--pulse-off', dest='pulse_off', type=int, help='Pulse off time t2 (0-255)')


def device_options(args: argparse.Namespace) -> dict:
    """The device fields given on the command line."""
    return {key: getattr(args, key) for key in sorted(DEVICE_FIELDS) if getattr(args, key) is not None}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='drawer-bridge',
        description=f'Drawer Bridge v{__version__}: PIN-gated cash drawer opener',
    )
    parser.add_argument(
        '--config', '-c',
        type=Path,
        default=None,
        help=f'Config file (default: {get_config_path()})',
    )
    parser.add_argument(
        '--log-level',
        choices=['debug', 'info', 'warning', 'error'],
        default='info',
        help='Logging level',
    )
    parser.add_argument(
        '--version', '-v',
        action='version',
        version=f'drawer-bridge {__version__}',
    )

    sub = parser.add_subparsers(dest='command', required=True)

    serve = sub.add_parser('serve', help='Run the local WebSocket bridge')
    serve.add_argument('--host', default='127.0.0.1', help='Bind address (default: 127.0.0.1)')
    serve.add_argument('--port', '-p', type=int, default=DEFAULT_BRIDGE_PORT,
                       help=f'WebSocket server port (default: {DEFAULT_BRIDGE_PORT})')

    sub.add_parser('open', help='Open the cash drawer (staff PIN)')

    test_open = sub.add_parser('test-open', help='Kick the drawer with unsaved settings (admin PIN)')
    add_device_options(test_open)

    configure = sub.add_parser('configure', help='Save printer settings (admin PIN)')
    add_device_options(configure)

    sub.add_parser('show-config', help='Print the current settings')
    sub.add_parser('set-pin', help='Set or change the staff PIN (admin PIN)')
    sub.add_parser('change-admin-pin', help='Change the admin PIN')
    sub.add_parser('first-run', help='Create the admin PIN and configure the printer')

    return parser


async def run_command(args: argparse.Namespace, controller: DrawerController) -> bool:
    """Run one CLI command. Returns True on success."""
    command = args.command

    if command == 'open':
        return await controller.open_drawer()

    if command == 'show-config':
        print(json.dumps(controller.load_config().public_dict(), indent=2))
        return True

    if command == 'set-pin':
        ok = await controller.set_staff_pin()
        print('PIN updated.' if ok else 'PIN not changed.')
        return ok

    if command == 'change-admin-pin':
        return await controller.set_admin_pin()

    if command in ('configure', 'test-open'):
        if not await controller.open_settings():
            print('Admin PIN required.', file=sys.stderr)
            return False

        options = device_options(args)
        if command == 'configure':
            if not options:
                print('Nothing to save.', file=sys.stderr)
                return False
            ok = controller.save_config(options)
            if ok:
                print('Saved.')
            return ok

        ok = await controller.test_open(options)
        print('Drawer opened!' if ok else 'Failed to open drawer. Check address/channel/pulse.')
        return ok

    if command == 'first-run':
        if await controller.first_run():
            print('No printer configured yet; run "drawer-bridge configure --address ...".')
        return controller.load_config().admin_pin_hash is not None

    raise ValueError(f"Unknown command: {command}")


def serve(args: argparse.Namespace, store: ConfigStore):
    import uvicorn

    from .server import create_app

    logger = logging.getLogger('drawer_bridge')
    logger.info(f"Starting WebSocket server on {args.host}:{args.port}")

    uvicorn.run(
        create_app(store),
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        ws='websockets',
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    store = ConfigStore(args.config)
    setup_logging(args.log_level, store.path)

    logger = logging.getLogger('drawer_bridge')
    logger.info(f"Drawer Bridge v{__version__}")
    logger.debug(f"Config: {store.path}")

    if args.command == 'serve':
        serve(args, store)
        return 0

    controller = DrawerController(store, ConsolePrompt(), ConsoleNotifier())
    ok = asyncio.run(run_command(args, controller))
    return 0 if ok else 1


if __name__ == '__main__':
    sys.exit(main())
