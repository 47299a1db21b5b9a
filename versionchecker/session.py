from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, List, Mapping, Optional, Protocol

from versionchecker.errors import AuthFailure, SessionUnavailable, TransportFailure, VersionCheckerError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0
STOP_JOIN_TIMEOUT = 15.0
LOGON_OK = "OK"


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AUTH_PENDING = "auth_pending"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


@dataclass(frozen=True)
class Connected:
    pass


@dataclass(frozen=True)
class Disconnected:
    reason: str = ""


@dataclass(frozen=True)
class LogonResult:
    result: str                    # LOGON_OK on success
    extended_result: str = ""


@dataclass(frozen=True)
class LoggedOff:
    result: str = ""


class Transport(Protocol):
    """What the session needs from the wire. Events come back through poll()."""

    def connect(self) -> None: ...

    def disconnect(self) -> None: ...

    def logon_anonymous(self) -> None: ...

    def logoff(self) -> None: ...

    def poll(self, timeout: float) -> Iterable[Any]: ...

    def get_product_info(self, app_ids: List[int]) -> Mapping[int, Mapping]: ...


def _spawn_daemon(target: Callable[[], None]) -> threading.Thread:
    t = threading.Thread(target=target, name="verchk-session-pump", daemon=True)
    t.start()
    return t


class RemoteSession:
    """
    Connect/logon lifecycle for the remote metadata service.

    Disconnected -> Connecting -> Connected -> AuthPending -> Authenticated,
    with Failed terminal for this process run (no automatic reconnect).

    The pump loop is the only thing that feeds events into handle_event() in
    production; tests inject events directly and pass a no-op spawn.
    """

    def __init__(
        self,
        transport: Transport,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        spawn: Optional[Callable[[Callable[[], None]], Any]] = None,
    ):
        self._transport = transport
        self.poll_interval = poll_interval
        self._spawn = spawn or _spawn_daemon
        self._lock = threading.RLock()
        self._state = SessionState.DISCONNECTED
        self._running = False
        self._settled = threading.Event()
        self._open = False
        self._pump: Any = None
        self.last_error: Optional[VersionCheckerError] = None

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def running(self) -> bool:
        return self._running

    def is_usable(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    def _set_state(self, state: SessionState) -> SessionState:
        with self._lock:
            if state is not self._state:
                logger.debug("Session %s -> %s", self._state.value, state.value)
            self._state = state
        if state in (SessionState.AUTHENTICATED, SessionState.FAILED, SessionState.DISCONNECTED):
            self._settled.set()
        else:
            self._settled.clear()
        return state

    def _fail(self, error: VersionCheckerError) -> SessionState:
        self.last_error = error
        self._running = False
        return self._set_state(SessionState.FAILED)

    # --- lifecycle ---

    def start(self) -> SessionState:
        with self._lock:
            if self._state is not SessionState.DISCONNECTED:
                logger.debug("Session start ignored in state %s", self._state.value)
                return self._state
            self._set_state(SessionState.CONNECTING)
            self._running = True

        try:
            self._transport.connect()
        except Exception as e:
            error = TransportFailure(f"Unable to connect: {e}")
            self._fail(error)
            raise error from e
        self._open = True

        self._pump = self._spawn(self._pump_loop)
        return self.state

    def stop(self) -> None:
        """
        Logs off (when authenticated) and disconnects. The pump keeps running
        until the transport is closed, so a transport that must do this work on
        the pump thread can; the pump thread is then joined.
        """
        with self._lock:
            was_authenticated = self._state is SessionState.AUTHENTICATED
            active = self._open
            self._open = False
            if self._state is not SessionState.FAILED:
                self._set_state(SessionState.DISCONNECTED)

        if not active:
            self._running = False
            return

        if was_authenticated:
            try:
                self._transport.logoff()
            except Exception as e:
                logger.warning("Log off failed: %s", e)
        try:
            self._transport.disconnect()
        except Exception as e:
            logger.warning("Disconnect failed: %s", e)
        self._running = False

        pump, self._pump = self._pump, None
        if isinstance(pump, threading.Thread) and pump is not threading.current_thread():
            pump.join(STOP_JOIN_TIMEOUT)

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Blocks until the session settles; True only if it authenticated."""
        self._settled.wait(timeout)
        return self.is_usable()

    # --- event pump ---

    def _pump_loop(self) -> None:
        while self._running:
            self.pump_once()

    def pump_once(self) -> SessionState:
        try:
            events = list(self._transport.poll(self.poll_interval))
        except Exception as e:
            logger.error("Session transport failed while polling: %s", e)
            return self.handle_event(Disconnected(reason=str(e)))

        for event in events:
            self.handle_event(event)
        return self.state

    def handle_event(self, event: Any) -> SessionState:
        state = self.state

        if isinstance(event, Connected):
            if state is not SessionState.CONNECTING:
                return state
            self._set_state(SessionState.CONNECTED)
            try:
                self._transport.logon_anonymous()
            except Exception as e:
                logger.error("Unable to request anonymous logon: %s", e)
                return self._fail(TransportFailure(f"Logon request failed: {e}"))
            return self._set_state(SessionState.AUTH_PENDING)

        if isinstance(event, LogonResult):
            if state is not SessionState.AUTH_PENDING:
                return state
            if event.result != LOGON_OK:
                logger.error("Unable to logon to Steam: %s / %s", event.result, event.extended_result)
                return self._fail(AuthFailure(event.result, event.extended_result))
            return self._set_state(SessionState.AUTHENTICATED)

        if isinstance(event, LoggedOff):
            logger.info("Logged off of Steam: %s", event.result)
            if state in (SessionState.DISCONNECTED, SessionState.FAILED):
                return state
            return self._fail(TransportFailure(f"Logged off: {event.result}"))

        if isinstance(event, Disconnected):
            # Stopping on purpose leaves the session re-startable; a failed
            # session keeps its first error.
            if state in (SessionState.DISCONNECTED, SessionState.FAILED):
                self._running = False
                return state
            if event.reason:
                logger.warning("Disconnected from Steam: %s", event.reason)
            return self._fail(TransportFailure(f"Disconnected: {event.reason or 'connection closed'}"))

        logger.debug("Ignoring unknown session event %r", event)
        return state

    # --- requests ---

    def product_info(self, app_ids: Iterable[int]) -> Mapping[int, Mapping]:
        if not self.is_usable():
            raise SessionUnavailable(f"Steam session is not available ({self.state.value})") from self.last_error

        ids = sorted(set(int(a) for a in app_ids))
        try:
            return self._transport.get_product_info(ids)
        except VersionCheckerError:
            raise
        except Exception as e:
            raise TransportFailure(f"Product info request failed: {e}") from e
