"""
FastAPI WebSocket server for Drawer Bridge.

The tray/kiosk front end connects to ws://localhost:PORT/ws, invokes drawer
operations, and answers the PIN prompts the bridge sends back.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import ConfigStore
from .controller import DrawerController
from .hardware.drawer import DrawerProtocolClient
from .protocol import (
    ACTIONS,
    SETTINGS_ACTIONS,
    parse_message,
    status_event,
    config_event,
    settings_event,
    config_saved_event,
    test_result_event,
    drawer_done_event,
    pin_result_event,
    prompt_secret_event,
    notice_event,
    error_event,
    generate_prompt_id,
)

logger = logging.getLogger('drawer_bridge')


class BridgeSession:
    """
    One connected front end.

    Acts as the controller's prompt and notifier: prompts become
    ``prompt_secret`` events answered by ``secret`` actions, notices become
    ``notice`` events. Outgoing messages go through a queue so they reach
    the client in the order they were produced.
    """

    def __init__(self, ws: WebSocket, store: ConfigStore, client: DrawerProtocolClient | None = None):
        self.ws = ws
        self.controller = DrawerController(store, prompt=self, notifier=self, client=client)
        self.settings_unlocked = False
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._pending: dict[str, asyncio.Future] = {}
        self._tasks: set[asyncio.Task] = set()
        self._flow_lock = asyncio.Lock()
        self._sender: asyncio.Task | None = None

    def start(self):
        self._sender = asyncio.create_task(self._send_loop())

    def send(self, message: str):
        self._outbox.put_nowait(message)

    async def _send_loop(self):
        while True:
            message = await self._outbox.get()
            try:
                await self.ws.send_text(message)
            except Exception as e:
                logger.debug(f"Send failed, dropping session output: {e}")
                return

    # ─── Prompt / notifier capabilities ──────────────────────────────────

    async def prompt_secret(self, title: str, label: str) -> str | None:
        prompt_id = generate_prompt_id()
        future = asyncio.get_running_loop().create_future()
        self._pending[prompt_id] = future
        try:
            self.send(prompt_secret_event(prompt_id, title, label))
            return await future
        finally:
            self._pending.pop(prompt_id, None)

    def resolve_prompt(self, msg: dict):
        prompt_id = msg.get('prompt_id')
        future = self._pending.get(prompt_id) if isinstance(prompt_id, str) else None
        if future is None or future.done():
            self.send(error_event(f"No pending prompt: {prompt_id}", 'unknown_prompt'))
            return

        value = msg.get('value')
        if msg.get('cancelled') or not isinstance(value, str):
            future.set_result(None)
        else:
            future.set_result(value)

    def show_error(self, title: str, message: str):
        self.send(notice_event('error', title, message))

    def show_message(self, message: str):
        self.send(notice_event('info', 'Drawer Bridge', message))

    # ─── Flow tasks ──────────────────────────────────────────────────────

    def spawn(self, coro):
        """Run a flow in the background so prompt replies can still arrive."""
        task = asyncio.create_task(self._run_flow(coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_flow(self, coro):
        async with self._flow_lock:
            try:
                await coro
            except Exception as e:
                logger.exception(f"Flow failed: {e}")
                self.send(error_event("Internal error", 'internal_error'))

    async def close(self):
        """Treat open prompts as cancelled and stop background work."""
        for future in list(self._pending.values()):
            if not future.done():
                future.set_result(None)

        tasks = list(self._tasks)
        if self._sender:
            tasks.append(self._sender)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


def create_app(store: ConfigStore | None = None, client: DrawerProtocolClient | None = None) -> FastAPI:
    """Build the bridge application around one config store."""
    store = store or ConfigStore()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Drawer Bridge v{__version__} starting (config: {store.path})")
        yield
        logger.info("Drawer Bridge shutting down")

    app = FastAPI(
        title="Drawer Bridge",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.connections = set()

    # Allow the local front end to connect from any localhost origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/status")
    async def health_check():
        """Health check endpoint for front end detection."""
        cfg = store.load()
        return {
            "status": "ok",
            "version": __version__,
            "configured": cfg.is_configured,
            "simulate": cfg.is_simulated,
        }

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket):
        """Main WebSocket endpoint for front end <-> bridge communication."""
        await ws.accept()
        session = BridgeSession(ws, store, client)
        session.start()
        connections = app.state.connections
        connections.add(session)
        logger.info(f"Client connected (total: {len(connections)})")

        handle_get_status(session)

        try:
            while True:
                raw = await ws.receive_text()
                handle_message(session, raw)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error(f"WebSocket error: {e}")
        finally:
            await session.close()
            connections.discard(session)
            logger.info(f"Client disconnected (total: {len(connections)})")

    return app


def handle_message(session: BridgeSession, raw: str):
    """Route incoming messages to the appropriate handler."""
    try:
        msg = parse_message(raw)
    except ValueError as e:
        session.send(error_event(str(e), 'parse_error'))
        return

    action = msg.get('action')
    logger.debug(f"Action: {action}")

    if not isinstance(action, str) or action not in ACTIONS:
        session.send(error_event(f"Unknown action: {action}", 'unknown_action'))
        return

    if action in SETTINGS_ACTIONS and not session.settings_unlocked:
        session.send(error_event("Settings are locked; send open_settings first", 'not_authorized'))
        return

    if action == 'secret':
        session.resolve_prompt(msg)
    elif action == 'get_status':
        handle_get_status(session)
    elif action == 'load_config':
        session.send(config_event(session.controller.load_config().public_dict()))
    elif action == 'open_settings':
        session.spawn(handle_open_settings(session))
    elif action == 'save_config':
        session.spawn(handle_save_config(session, msg))
    elif action == 'test_open':
        session.spawn(handle_test_open(session, msg))
    elif action == 'open_drawer':
        session.spawn(handle_open_drawer(session))
    elif action == 'set_staff_pin':
        session.spawn(handle_set_staff_pin(session))
    elif action == 'set_admin_pin':
        session.spawn(handle_set_admin_pin(session))


def handle_get_status(session: BridgeSession):
    cfg = session.controller.load_config()
    session.send(status_event(
        version=__version__,
        configured=cfg.is_configured,
        simulate=cfg.is_simulated,
    ))


async def handle_open_settings(session: BridgeSession):
    """Admin gate for the settings surface; unlocks the session on success."""
    unlocked = await session.controller.open_settings()
    if unlocked:
        session.settings_unlocked = True
        logger.info("Settings unlocked")
    session.send(settings_event(unlocked))


async def handle_save_config(session: BridgeSession, msg: dict):
    partial = msg.get('config')
    if not isinstance(partial, dict):
        session.send(error_event("save_config needs a 'config' object", 'missing_param'))
        return

    ok = session.controller.save_config(partial)
    session.send(config_saved_event(ok))


async def handle_test_open(session: BridgeSession, msg: dict):
    override = msg.get('config')
    if override is not None and not isinstance(override, dict):
        session.send(error_event("'config' must be an object", 'invalid_param'))
        return

    ok = await session.controller.test_open(override)
    session.send(test_result_event(ok))


async def handle_open_drawer(session: BridgeSession):
    await session.controller.open_drawer()
    session.send(drawer_done_event())


async def handle_set_staff_pin(session: BridgeSession):
    ok = await session.controller.set_staff_pin()
    session.send(pin_result_event('staff', ok))


async def handle_set_admin_pin(session: BridgeSession):
    ok = await session.controller.set_admin_pin()
    session.send(pin_result_event('admin', ok))

