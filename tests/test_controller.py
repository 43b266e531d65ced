"""
Drawer Controller Tests
=======================

Tests for the operations front ends call: open_drawer, test_open,
save_config, PIN rotation wrappers, open_settings and first_run.

Run with: python -m pytest tests/test_controller.py -v
"""

import asyncio

from drawer_bridge.controller import (
    KICK_FAILED_MESSAGE,
    NOT_CONFIGURED_MESSAGE,
    DrawerController,
)
from drawer_bridge.security import hash_pin

from conftest import FakeDrawerClient, ScriptedPrompt


def make_controller(store, notifier, client, *answers):
    prompt = ScriptedPrompt(*answers)
    return DrawerController(store, prompt, notifier, client=client), prompt


# ============================================================================
# open_drawer
# ============================================================================

class TestOpenDrawer:
    def test_not_configured_never_prompts(self, store, notifier, fake_client):
        controller, prompt = make_controller(store, notifier, fake_client)

        assert asyncio.run(controller.open_drawer()) is False

        assert prompt.calls == []
        assert fake_client.kicked == []
        assert notifier.errors == [("Not Configured", NOT_CONFIGURED_MESSAGE)]

    def test_first_open_bootstraps_staff_pin_and_kicks(self, store, notifier, fake_client):
        store.save({'printer_address': 'simulate'})
        controller, _ = make_controller(store, notifier, fake_client, '1234')

        assert asyncio.run(controller.open_drawer()) is True

        assert store.load().staff_pin_hash == hash_pin('1234')
        assert len(fake_client.kicked) == 1
        assert notifier.errors == []

    def test_correct_pin_kicks_with_stored_config(self, store, notifier, fake_client):
        store.save({
            'printer_address': '10.0.0.9',
            'drawer_channel': 1,
            'staff_pin_hash': hash_pin('1234'),
        })
        controller, _ = make_controller(store, notifier, fake_client, '1234')

        asyncio.run(controller.open_drawer())

        assert len(fake_client.kicked) == 1
        kicked = fake_client.kicked[0]
        assert kicked.printer_address == '10.0.0.9'
        assert kicked.drawer_channel == 1

    def test_wrong_pin_is_silent(self, store, notifier, fake_client):
        store.save({'printer_address': 'simulate', 'staff_pin_hash': hash_pin('1234')})
        controller, _ = make_controller(store, notifier, fake_client, '9999')

        assert asyncio.run(controller.open_drawer()) is False

        assert fake_client.kicked == []
        assert notifier.errors == []
        assert notifier.messages == []

    def test_cancel_is_silent(self, store, notifier, fake_client):
        store.save({'printer_address': 'simulate', 'staff_pin_hash': hash_pin('1234')})
        controller, _ = make_controller(store, notifier, fake_client, None)

        asyncio.run(controller.open_drawer())

        assert fake_client.kicked == []
        assert notifier.errors == []

    def test_transport_failure_reported(self, store, notifier):
        store.save({'printer_address': '10.0.0.9', 'staff_pin_hash': hash_pin('1234')})
        client = FakeDrawerClient(result=False)
        controller, _ = make_controller(store, notifier, client, '1234')

        assert asyncio.run(controller.open_drawer()) is False

        assert notifier.errors == [("Failed", KICK_FAILED_MESSAGE)]

    def test_real_client_against_closed_port(self, store, notifier, closed_port):
        store.save({
            'printer_address': '127.0.0.1',
            'printer_port': closed_port,
            'staff_pin_hash': hash_pin('1234'),
        })
        controller = DrawerController(store, ScriptedPrompt('1234'), notifier)

        asyncio.run(controller.open_drawer())

        assert notifier.errors == [("Failed", KICK_FAILED_MESSAGE)]

    def test_blank_address_counts_as_configured(self, store, notifier):
        store.save({'printer_address': '   ', 'staff_pin_hash': hash_pin('1234')})
        client = FakeDrawerClient(result=False)
        controller, prompt = make_controller(store, notifier, client, '1234')

        assert asyncio.run(controller.open_drawer()) is False

        assert len(prompt.calls) == 1
        assert len(client.kicked) == 1
        assert notifier.errors == [("Failed", KICK_FAILED_MESSAGE)]


# ============================================================================
# test_open
# ============================================================================

class TestTestOpen:
    def test_uses_override_without_saving_or_prompting(self, store, notifier, fake_client):
        store.save({'printer_address': '10.0.0.9', 'pulse_on': 50})
        controller, prompt = make_controller(store, notifier, fake_client)

        ok = asyncio.run(controller.test_open({'printer_address': 'simulate', 'pulse_on': 10}))

        assert ok is True
        assert prompt.calls == []
        assert fake_client.kicked[0].printer_address == 'simulate'
        assert fake_client.kicked[0].pulse_on == 10
        assert store.load().printer_address == '10.0.0.9'
        assert store.load().pulse_on == 50

    def test_without_override_uses_saved(self, store, notifier, fake_client):
        store.save({'printer_address': 'simulate'})
        controller, _ = make_controller(store, notifier, fake_client)

        assert asyncio.run(controller.test_open()) is True
        assert fake_client.kicked[0].printer_address == 'simulate'

    def test_invalid_override_fails(self, store, notifier, fake_client):
        controller, _ = make_controller(store, notifier, fake_client)

        ok = asyncio.run(controller.test_open({'printer_address': 'simulate', 'drawer_channel': 5}))

        assert ok is False
        assert fake_client.kicked == []

    def test_override_cannot_touch_pin_hashes(self, store, notifier, fake_client):
        store.save({'admin_pin_hash': hash_pin('1234')})
        controller, _ = make_controller(store, notifier, fake_client)

        ok = asyncio.run(controller.test_open({'printer_address': 'simulate', 'admin_pin_hash': None}))

        assert ok is False
        assert fake_client.kicked == []
        assert store.load().admin_pin_hash == hash_pin('1234')

    def test_unconfigured_fails(self, store, notifier, fake_client):
        controller, _ = make_controller(store, notifier, fake_client)

        assert asyncio.run(controller.test_open()) is False
        assert fake_client.kicked == []

    def test_simulate_with_real_client(self, store, notifier):
        controller = DrawerController(store, ScriptedPrompt(), notifier)
        assert asyncio.run(controller.test_open({'printer_address': 'simulate'})) is True


# ============================================================================
# save_config / PIN wrappers / settings
# ============================================================================

class TestSaveConfig:
    def test_saves_partial(self, store, notifier, fake_client):
        controller, _ = make_controller(store, notifier, fake_client)

        assert controller.save_config({'printer_address': '10.0.0.9'}) is True
        assert controller.load_config().printer_address == '10.0.0.9'

    def test_invalid_reported(self, store, notifier, fake_client):
        controller, _ = make_controller(store, notifier, fake_client)

        assert controller.save_config({'pulse_off': 1000}) is False

        assert notifier.errors[0][0] == "Invalid Settings"
        assert not store.path.exists()

    def test_pin_hashes_rejected(self, store, notifier, fake_client):
        store.save({'admin_pin_hash': hash_pin('1234'), 'staff_pin_hash': hash_pin('5678')})
        controller, _ = make_controller(store, notifier, fake_client)

        assert controller.save_config({'printer_address': '10.0.0.9', 'admin_pin_hash': None}) is False

        cfg = store.load()
        assert cfg.admin_pin_hash == hash_pin('1234')
        assert cfg.staff_pin_hash == hash_pin('5678')
        assert cfg.printer_address == ''
        assert notifier.errors[0][0] == "Invalid Settings"


class TestPinOperations:
    def test_set_staff_pin(self, store, notifier, fake_client):
        store.save({'admin_pin_hash': hash_pin('1234')})
        controller, _ = make_controller(store, notifier, fake_client, '1234', '2468')

        assert asyncio.run(controller.set_staff_pin()) is True
        assert store.load().staff_pin_hash == hash_pin('2468')

    def test_set_admin_pin(self, store, notifier, fake_client):
        store.save({'admin_pin_hash': hash_pin('1234')})
        controller, _ = make_controller(store, notifier, fake_client, '1234', '5678', '5678')

        assert asyncio.run(controller.set_admin_pin()) is True
        assert store.load().admin_pin_hash == hash_pin('5678')
        assert notifier.messages == ["Admin PIN updated."]

    def test_open_settings(self, store, notifier, fake_client):
        store.save({'admin_pin_hash': hash_pin('1234')})
        controller, _ = make_controller(store, notifier, fake_client, '1234', '0000')

        assert asyncio.run(controller.open_settings()) is True
        assert asyncio.run(controller.open_settings()) is False


class TestFirstRun:
    def test_fresh_install_asks_admin_twice_and_opens_settings(self, store, notifier, fake_client):
        controller, prompt = make_controller(store, notifier, fake_client, '1234', '1234')

        assert asyncio.run(controller.first_run()) is True

        assert store.load().admin_pin_hash == hash_pin('1234')
        assert [title for title, _ in prompt.calls] == ["Set Admin PIN", "Admin PIN Required"]

    def test_configured_install_does_nothing(self, store, notifier, fake_client):
        store.save({'printer_address': 'simulate', 'admin_pin_hash': hash_pin('1234')})
        controller, prompt = make_controller(store, notifier, fake_client)

        assert asyncio.run(controller.first_run()) is False
        assert prompt.calls == []

    def test_cancelled_bootstrap_does_not_open_settings(self, store, notifier, fake_client):
        controller, _ = make_controller(store, notifier, fake_client, None, None)

        assert asyncio.run(controller.first_run()) is False
        assert store.load().admin_pin_hash is None
