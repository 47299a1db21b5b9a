from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import Future, InvalidStateError
from typing import Any, Callable, List, Mapping, Optional, Set

from versionchecker.errors import TransportFailure
from versionchecker.session import LOGON_OK, Connected, Disconnected, LoggedOff, LogonResult

logger = logging.getLogger(__name__)

# how long stop() waits for the pump thread to run log off / disconnect
CALL_TIMEOUT = 10.0


def _import_steam_client():
    try:
        from steam.client import SteamClient  # type: ignore
    except ImportError as exc:
        raise RuntimeError(
            "The 'steam' package is required to talk to Steam. Install it with 'pip install steam[client]'."
        ) from exc
    return SteamClient


def _gevent_spawn(fn: Callable[[], None]) -> Any:
    import gevent  # installed with steam[client]

    return gevent.spawn(fn)


def _result_name(result: Any) -> str:
    return getattr(result, "name", None) or str(result)


def _settle(future: Future, result: Any = None, error: Optional[BaseException] = None) -> None:
    # a request can race with disconnect failing it
    try:
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)
    except InvalidStateError:
        pass


class SteamTransport:
    """
    Session transport backed by steam.client.SteamClient.

    SteamClient runs on gevent, so the client is created, connected and
    driven only from the session pump thread (inside poll()). Work asked for
    from other threads (product info, log off, disconnect) is queued as a
    call, run on the pump thread and answered through a Future; client
    callbacks only enqueue session events.
    """

    def __init__(
        self,
        product_info_timeout: Optional[float] = None,
        client: Any = None,
        spawn: Callable[[Callable[[], None]], Any] = _gevent_spawn,
        call_timeout: float = CALL_TIMEOUT,
    ):
        self.product_info_timeout = product_info_timeout
        self.call_timeout = call_timeout
        self._client = client
        self._spawn = spawn
        self._events: "queue.Queue[Any]" = queue.Queue()
        self._calls: "queue.Queue[Callable[[], None]]" = queue.Queue()
        self._pending: Set[Future] = set()
        self._pending_lock = threading.Lock()
        self._connect_requested = False
        self._opened = False
        self._subscribed = False
        self._pump_ident: Optional[int] = None

    def _ensure_client(self):
        if self._client is None:
            SteamClient = _import_steam_client()
            self._client = SteamClient()
        if not self._subscribed:
            c = self._client
            c.on("connected", lambda *args: self._events.put(Connected()))
            c.on("disconnected", self._on_disconnected)
            c.on("logged_off", lambda *args: self._events.put(LoggedOff(result="LoggedOff")))
            self._subscribed = True
        return self._client

    def _on_disconnected(self, *args) -> None:
        self._opened = False
        self._events.put(Disconnected())

    @property
    def opened(self) -> bool:
        return self._opened

    # --- running work on the pump thread ---

    def _on_pump_thread(self) -> bool:
        return self._pump_ident == threading.get_ident()

    def _call_on_pump(self, fn: Callable[[], Any], timeout: Optional[float], track: bool = True) -> Any:
        if self._on_pump_thread():
            return fn()

        future: Future = Future()
        if track:
            with self._pending_lock:
                self._pending.add(future)

        def run() -> None:
            try:
                _settle(future, result=fn())
            except Exception as e:
                _settle(future, error=e)
            finally:
                with self._pending_lock:
                    self._pending.discard(future)

        self._calls.put(run)
        return future.result(timeout)

    def _drain_calls(self) -> List[Callable[[], None]]:
        calls = []
        while True:
            try:
                calls.append(self._calls.get_nowait())
            except queue.Empty:
                return calls

    def _drain_events(self) -> List[Any]:
        events = []
        while True:
            try:
                events.append(self._events.get_nowait())
            except queue.Empty:
                return events

    def _fail_pending(self, reason: str) -> None:
        with self._pending_lock:
            pending, self._pending = self._pending, set()
        for future in pending:
            _settle(future, error=TransportFailure(reason))

    # --- Transport ---

    def connect(self) -> None:
        # fail early if the package is missing; the socket opens on the pump thread
        if self._client is None:
            _import_steam_client()
        self._connect_requested = True

    def disconnect(self) -> None:
        self._connect_requested = False
        if self._opened:
            self._call_on_pump(self._client.disconnect, self.call_timeout, track=False)
        self._opened = False
        self._fail_pending("Disconnected")

    def logon_anonymous(self) -> None:
        # called from handle_event, i.e. on the pump thread
        client = self._ensure_client()
        result = _result_name(client.anonymous_login())
        self._events.put(LogonResult(result=result))
        if result != LOGON_OK:
            # the session gives up on a rejected logon; drop the socket here
            client.disconnect()
            self._opened = False
            self._connect_requested = False

    def logoff(self) -> None:
        if self._opened:
            self._call_on_pump(self._client.logout, self.call_timeout, track=False)

    def _open(self) -> None:
        # calls and events left over from a previous connection are stale
        self._drain_calls()
        self._drain_events()
        client = self._ensure_client()
        self._opened = True
        if not client.connect():
            logger.error("Unable to connect to Steam")
            self._opened = False
            self._connect_requested = False
            self._events.put(Disconnected(reason="Unable to connect to Steam"))

    def poll(self, timeout: float) -> List[Any]:
        self._pump_ident = threading.get_ident()
        if self._connect_requested and not self._opened:
            self._open()

        if not self._opened:
            time.sleep(timeout)
        else:
            for call in self._drain_calls():
                self._spawn(call)
            # yields to the client's greenlets so callbacks and requests run
            self._client.sleep(timeout)

        events = self._drain_events()
        if any(isinstance(e, Disconnected) for e in events):
            self._opened = False
            self._connect_requested = False
            self._fail_pending("Disconnected")
        return events

    def _product_info_now(self, app_ids: List[int]) -> Mapping[int, Mapping]:
        result = self._client.get_product_info(apps=list(app_ids), timeout=self.product_info_timeout)
        if result is None:
            raise TransportFailure(f"No product info response for apps {app_ids}")

        apps = {}
        for app_id, entry in (result.get("apps") or {}).items():
            entry = entry or {}
            apps[int(app_id)] = entry.get("appinfo", entry)
        return apps

    def get_product_info(self, app_ids: List[int]) -> Mapping[int, Mapping]:
        """Blocks the calling thread until the pump thread has the answer."""
        if not self._opened:
            raise TransportFailure("Not connected to Steam")
        return self._call_on_pump(lambda: self._product_info_now(app_ids), None)
