"""
Drawer controller: the operations a front end (tray, hotkey, CLI, bridge)
invokes. Outcomes go to the notifier; nothing here raises to the caller.
"""

import logging

from .auth import AuthorizationGate
from .config import ConfigError, ConfigStore, DeviceConfig, device_settings
from .console import Notifier, SecretPrompt
from .hardware.drawer import DrawerProtocolClient

logger = logging.getLogger('drawer_bridge.controller')

NOT_CONFIGURED_MESSAGE = "Please set printer address in Settings."
KICK_FAILED_MESSAGE = (
    "Could not open the cash drawer. Check address, channel, pulse, "
    "and that the printer is reachable."
)


class DrawerController:
    """Ties config, PIN authorization and the drawer client together."""

    def __init__(
        self,
        store: ConfigStore,
        prompt: SecretPrompt,
        notifier: Notifier,
        client: DrawerProtocolClient | None = None,
    ):
        self._store = store
        self._notifier = notifier
        self._gate = AuthorizationGate(store, prompt, notifier)
        self._client = client or DrawerProtocolClient()

    @property
    def store(self) -> ConfigStore:
        return self._store

    def load_config(self) -> DeviceConfig:
        return self._store.load()

    def save_config(self, partial: dict) -> bool:
        """Persist settings. Callers gate this behind open_settings()."""
        try:
            self._store.save(device_settings(partial))
        except ConfigError as e:
            self._notifier.show_error("Invalid Settings", str(e))
            return False
        except OSError as e:
            logger.error(f"Could not write config to {self._store.path}: {e}")
            self._notifier.show_error("Error", "Could not save settings.")
            return False

        logger.info(f"Settings saved: {sorted(partial)}")
        return True

    async def open_drawer(self) -> bool:
        """Staff-gated drawer open. Returns True once the drawer was kicked."""
        cfg = self._store.load()

        if not cfg.is_configured:
            self._notifier.show_error("Not Configured", NOT_CONFIGURED_MESSAGE)
            return False

        # Wrong PIN and cancel look the same to the operator.
        if not await self._gate.verify_or_bootstrap_staff(cfg):
            logger.info("Drawer open not authorized")
            return False

        if not await self._client.kick(cfg):
            self._notifier.show_error("Failed", KICK_FAILED_MESSAGE)
            return False

        logger.info("Cash drawer opened")
        return True

    async def test_open(self, override: dict | None = None) -> bool:
        """
        Kick the drawer with possibly unsaved settings, without a PIN.

        Only reachable from a settings surface that has already passed
        open_settings().
        """
        cfg = self._store.load()
        if override:
            try:
                cfg = cfg.merged(device_settings(override))
                cfg.validate()
            except ConfigError as e:
                logger.warning(f"Test open rejected: {e}")
                return False

        if not cfg.is_configured:
            return False
        return await self._client.kick(cfg)

    async def set_staff_pin(self) -> bool:
        return await self._gate.change_staff_pin(self._store.load())

    async def set_admin_pin(self) -> bool:
        return await self._gate.change_admin_pin(self._store.load())

    async def open_settings(self) -> bool:
        """Admin check (or first admin PIN) before showing settings."""
        return await self._gate.verify_or_bootstrap_admin(self._store.load())

    async def first_run(self) -> bool:
        """
        Startup sequence.

        Makes sure an admin PIN exists, then, if no printer has been set up
        yet, asks for admin access so the host can show settings.

        Returns:
            True when the host should open its settings surface.
        """
        cfg = self._store.load()
        if cfg.admin_pin_hash is None:
            await self._gate.verify_or_bootstrap_admin(cfg)

        if self._store.load().is_configured:
            return False
        return await self.open_settings()
