"""
Cash drawer control via ESC/POS kick commands.

Cash drawers are connected to the printer's DK port. The drawer is opened
by sending an ESC/POS pulse command through the printer's raw network port.
"""

import asyncio
import logging

from escpos.exceptions import Error as EscposError
from escpos.printer import Network

from ..config import DeviceConfig

logger = logging.getLogger('drawer_bridge.drawer')

# ESC/POS cash drawer kick command
# Format: ESC p <m> <t1> <t2>
#   m:  0 = connector pin 2, 1 = connector pin 5
#   t1: pulse on time, t2: pulse off time (units of 2 ms on most printers)
KICK_PREFIX = b'\x1b\x70'

# Connect + write budget for a real printer, in seconds
KICK_TIMEOUT = 3.0

# Latency stand-in for the no-hardware path, in seconds
SIMULATE_DELAY = 0.15


def build_kick_command(channel: int, pulse_on: int, pulse_off: int) -> bytes:
    """
    Build the 5-byte drawer kick command.

    Args:
        channel: Drawer connector (0 = pin 2, 1 = pin 5)
        pulse_on: t1, 0-255
        pulse_off: t2, 0-255
    """
    if channel not in (0, 1):
        raise ValueError(f"Drawer channel must be 0 or 1, got {channel}")
    for name, value in (('pulse_on', pulse_on), ('pulse_off', pulse_off)):
        if not 0 <= value <= 255:
            raise ValueError(f"{name} must be between 0 and 255, got {value}")

    return KICK_PREFIX + bytes([channel, pulse_on, pulse_off])


class DrawerProtocolClient:
    """Sends drawer kicks to a network printer, or fakes them in simulate mode."""

    def __init__(self, timeout: float = KICK_TIMEOUT, simulate_delay: float = SIMULATE_DELAY):
        self._timeout = timeout
        self._simulate_delay = simulate_delay

    async def kick(self, cfg: DeviceConfig) -> bool:
        """
        Pulse the drawer described by ``cfg``.

        Returns True once the command has been written, False on any
        connect/write/timeout failure. Never raises.
        """
        if cfg.is_simulated:
            await asyncio.sleep(self._simulate_delay)
            logger.info("Simulated drawer kick")
            return True

        try:
            command = build_kick_command(cfg.drawer_channel, cfg.pulse_on, cfg.pulse_off)
        except (TypeError, ValueError) as e:
            logger.error(f"Invalid drawer parameters: {e}")
            return False

        host = cfg.printer_address.strip()
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send, host, cfg.printer_port, command)
        except (OSError, EscposError) as e:
            logger.warning(f"Drawer kick to {host}:{cfg.printer_port} failed: {e}")
            return False

        logger.info(f"Cash drawer kicked via {host}:{cfg.printer_port} (channel {cfg.drawer_channel})")
        return True

    def _send(self, host: str, port: int, command: bytes):
        # Socket timeout bounds both connect and sendall.
        printer = Network(host, port=port, timeout=self._timeout)
        try:
            printer._raw(command)
        finally:
            try:
                printer.close()
            except Exception:
                pass
