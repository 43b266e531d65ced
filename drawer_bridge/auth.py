"""
Staff and admin PIN authorization.

Each credential slot starts unset. The first successful prompt on an unset
slot stores that PIN (bootstrap); every later call verifies against it.
The admin PIN gates settings and PIN rotation; the staff PIN gates the
drawer itself.
"""

import logging

from .config import ConfigStore, DeviceConfig
from .console import Notifier, SecretPrompt
from .security import hash_pin, pin_matches

logger = logging.getLogger('drawer_bridge.auth')

STAFF = 'staff'
ADMIN = 'admin'

_HASH_FIELDS = {
    STAFF: 'staff_pin_hash',
    ADMIN: 'admin_pin_hash',
}


class AuthorizationGate:
    """Two-tier PIN state machine backed by the config store."""

    def __init__(self, store: ConfigStore, prompt: SecretPrompt, notifier: Notifier):
        self._store = store
        self._prompt = prompt
        self._notifier = notifier

    async def verify_or_bootstrap_admin(self, cfg: DeviceConfig) -> bool:
        if cfg.admin_pin_hash is None:
            return await self._bootstrap(
                cfg, ADMIN,
                "Set Admin PIN",
                "Create an Admin PIN (managers only):",
            )
        entered = await self._ask("Admin PIN Required", "Enter Admin PIN:")
        return entered is not None and pin_matches(entered, cfg.admin_pin_hash)

    async def verify_or_bootstrap_staff(self, cfg: DeviceConfig) -> bool:
        if cfg.staff_pin_hash is None:
            return await self._bootstrap(
                cfg, STAFF,
                "Set PIN",
                "Create a PIN to open the drawer:",
            )
        entered = await self._ask("PIN Required", "Enter PIN to open the cash drawer:")
        return entered is not None and pin_matches(entered, cfg.staff_pin_hash)

    async def change_staff_pin(self, cfg: DeviceConfig) -> bool:
        """Admin-gated staff PIN rotation (single entry, no confirmation)."""
        if not await self.verify_or_bootstrap_admin(cfg):
            return False

        pin = await self._ask("Set/Change PIN", "Enter new PIN:")
        if not pin:
            return False

        if not self._store_pin(cfg, STAFF, pin):
            return False
        logger.info("Staff PIN changed")
        return True

    async def change_admin_pin(self, cfg: DeviceConfig) -> bool:
        """Admin PIN rotation: current PIN (or bootstrap), new PIN, confirmation."""
        if not await self.verify_or_bootstrap_admin(cfg):
            return False

        new_pin = await self._ask("Change Admin PIN", "Enter new Admin PIN:")
        if not new_pin:
            return False

        confirm = await self._ask("Confirm Admin PIN", "Re-enter new Admin PIN:")
        if confirm is None:
            return False
        if confirm != new_pin:
            self._notifier.show_error("Mismatch", "PINs didn't match.")
            return False

        if not self._store_pin(cfg, ADMIN, new_pin):
            return False
        logger.info("Admin PIN changed")
        self._notifier.show_message("Admin PIN updated.")
        return True

    # ─── Internals ───────────────────────────────────────────────────────

    async def _bootstrap(self, cfg: DeviceConfig, slot: str, title: str, label: str) -> bool:
        # An empty entry cannot become a PIN; it counts as a cancel.
        pin = await self._ask(title, label)
        if not pin:
            return False

        if not self._store_pin(cfg, slot, pin):
            return False
        logger.info(f"{slot.capitalize()} PIN created")
        return True

    def _store_pin(self, cfg: DeviceConfig, slot: str, pin: str) -> bool:
        field = _HASH_FIELDS[slot]
        digest = hash_pin(pin)
        try:
            self._store.save({field: digest})
        except OSError as e:
            logger.error(f"Could not persist {slot} PIN to {self._store.path}: {e}")
            self._notifier.show_error("Error", "Could not save the PIN.")
            return False
        setattr(cfg, field, digest)
        return True

    async def _ask(self, title: str, label: str) -> str | None:
        try:
            return await self._prompt.prompt_secret(title, label)
        except Exception as e:
            logger.error(f"PIN prompt failed: {e}")
            return None
