"""
WebSocket protocol definitions for front end <-> bridge communication.

All messages are JSON objects with either an 'action' key (front end -> bridge)
or an 'event' key (bridge -> front end).
"""

import json
import uuid


# ─── Front end → Bridge (Commands) ──────────────────────────────────────────

ACTIONS = {
    'get_status',
    'load_config',
    'open_settings',
    'save_config',
    'test_open',
    'open_drawer',
    'set_staff_pin',
    'set_admin_pin',
    'secret',
}

# Actions that need a session unlocked by open_settings
SETTINGS_ACTIONS = {'save_config', 'test_open'}


def make_command(action: str, **kwargs) -> str:
    """Create a JSON command string to send to the bridge."""
    msg = {'action': action, **kwargs}
    return json.dumps(msg)


# ─── Bridge → Front end (Events) ────────────────────────────────────────────

def status_event(version: str, configured: bool, simulate: bool) -> str:
    return json.dumps({
        'event': 'status',
        'version': version,
        'configured': configured,
        'simulate': simulate,
    })


def config_event(config: dict) -> str:
    return json.dumps({
        'event': 'config',
        'config': config,
    })


def settings_event(unlocked: bool) -> str:
    return json.dumps({
        'event': 'settings',
        'unlocked': unlocked,
    })


def config_saved_event(ok: bool) -> str:
    return json.dumps({
        'event': 'config_saved',
        'ok': ok,
    })


def test_result_event(ok: bool) -> str:
    return json.dumps({
        'event': 'test_result',
        'ok': ok,
    })


def drawer_done_event() -> str:
    """Sent when an open_drawer flow finishes, whatever its outcome."""
    return json.dumps({
        'event': 'drawer_done',
    })


def pin_result_event(slot: str, ok: bool) -> str:
    return json.dumps({
        'event': 'pin_result',
        'slot': slot,
        'ok': ok,
    })


def prompt_secret_event(prompt_id: str, title: str, label: str) -> str:
    return json.dumps({
        'event': 'prompt_secret',
        'prompt_id': prompt_id,
        'title': title,
        'label': label,
    })


def notice_event(level: str, title: str, message: str) -> str:
    return json.dumps({
        'event': 'notice',
        'level': level,    # 'error', 'info'
        'title': title,
        'message': message,
    })


def error_event(message: str, code: str = 'unknown') -> str:
    return json.dumps({
        'event': 'error',
        'message': message,
        'code': code,
    })


# ─── Parsing ────────────────────────────────────────────────────────────────

def parse_message(raw: str) -> dict:
    """Parse an incoming JSON message. Returns dict or raises ValueError."""
    try:
        msg = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e}")

    if not isinstance(msg, dict):
        raise ValueError("Message must be a JSON object")

    if 'action' not in msg and 'event' not in msg:
        raise ValueError("Message must have 'action' or 'event' key")

    return msg


def generate_prompt_id() -> str:
    """Generate a unique ID correlating a prompt with its reply."""
    return str(uuid.uuid4())
