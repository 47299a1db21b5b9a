"""Tests for the SteamClient-backed transport, with a stand-in client."""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future

import pytest

from versionchecker.errors import AuthFailure, TransportFailure
from versionchecker.session import LogonResult, RemoteSession, SessionState
from versionchecker.steam_transport import SteamTransport, _settle


class EResultLike:
    def __init__(self, name):
        self.name = name


class FakeClient:
    """Mimics the parts of steam.client.SteamClient the transport uses."""

    def __init__(self, product_info=None, logon="OK", connect_ok=True):
        self.handlers = {}
        self.product_info = product_info
        self.logon = logon
        self.connect_ok = connect_ok
        self.calls = []
        self.log = []
        self.threads = {}

    def on(self, event, callback):
        self.handlers[event] = callback

    def _record(self, name):
        self.log.append(name)
        self.threads[name] = threading.get_ident()

    def connect(self):
        self._record("connect")
        if self.connect_ok:
            self.handlers["connected"]()
        return self.connect_ok

    def disconnect(self):
        self._record("disconnect")
        self.handlers["disconnected"]()

    def anonymous_login(self):
        self._record("logon")
        return EResultLike(self.logon)

    def logout(self):
        self._record("logout")
        self.handlers["disconnected"]()

    def sleep(self, seconds):
        time.sleep(seconds)

    def get_product_info(self, apps, timeout=None):
        self._record("product_info")
        self.calls.append((apps, timeout))
        return self.product_info


def run_now(fn):
    fn()


def make_transport(client, **kw) -> SteamTransport:
    return SteamTransport(client=client, spawn=run_now, **kw)


def pump_until(session: RemoteSession, state: SessionState, limit: int = 5) -> SessionState:
    for _ in range(limit):
        if session.pump_once() is state:
            break
    return session.state


def poll_while(transport: SteamTransport, caller: threading.Thread) -> None:
    for _ in range(500):
        if not caller.is_alive():
            break
        transport.poll(0.01)
    caller.join(1)


class TestLifecycle:
    def test_connects_and_authenticates_through_poll(self):
        client = FakeClient()
        s = RemoteSession(make_transport(client), poll_interval=0, spawn=lambda fn: None)
        s.start()

        # nothing touches the client until the pump polls
        assert client.log == []
        assert pump_until(s, SessionState.AUTHENTICATED) is SessionState.AUTHENTICATED
        assert client.log == ["connect", "logon"]

    def test_stopped_session_reconnects_on_restart(self):
        client = FakeClient()
        t = make_transport(client)
        s = RemoteSession(t, poll_interval=0, spawn=lambda fn: None)

        s.start()
        pump_until(s, SessionState.AUTHENTICATED)
        s.stop()
        assert s.state is SessionState.DISCONNECTED
        assert not t.opened

        assert s.start() is SessionState.CONNECTING
        assert pump_until(s, SessionState.AUTHENTICATED) is SessionState.AUTHENTICATED
        assert client.log.count("connect") == 2

    def test_stop_logs_off_before_disconnecting(self):
        client = FakeClient()
        s = RemoteSession(make_transport(client), poll_interval=0, spawn=lambda fn: None)
        s.start()
        pump_until(s, SessionState.AUTHENTICATED)

        s.stop()

        # logout already closed the connection, so there is nothing left to disconnect
        assert client.log[2:] == ["logout"]

    def test_rejected_logon_drops_the_connection(self):
        client = FakeClient(logon="InvalidPassword")
        t = make_transport(client)
        s = RemoteSession(t, poll_interval=0, spawn=lambda fn: None)
        s.start()

        assert pump_until(s, SessionState.FAILED) is SessionState.FAILED
        assert client.log == ["connect", "logon", "disconnect"]
        assert not t.opened
        assert isinstance(s.last_error, AuthFailure)

        s.stop()
        assert client.log.count("disconnect") == 1

    def test_failed_connect_reports_disconnect(self):
        client = FakeClient(connect_ok=False)
        s = RemoteSession(make_transport(client), poll_interval=0, spawn=lambda fn: None)
        s.start()

        assert pump_until(s, SessionState.FAILED) is SessionState.FAILED


class TestPumpThread:
    def _opened(self, client) -> SteamTransport:
        t = make_transport(client)
        t.connect()
        t.poll(0)
        assert t.opened
        return t

    def test_log_off_from_another_thread_runs_on_pump_thread(self):
        client = FakeClient()
        t = self._opened(client)

        caller = threading.Thread(target=t.logoff)
        caller.start()
        poll_while(t, caller)

        assert not caller.is_alive()
        assert client.threads["logout"] == threading.get_ident()

    def test_product_info_from_another_thread_runs_on_pump_thread(self):
        client = FakeClient({"apps": {"440": {"appinfo": {"depots": {}}}}})
        t = self._opened(client)
        answers = []

        caller = threading.Thread(target=lambda: answers.append(t.get_product_info([440])))
        caller.start()
        poll_while(t, caller)

        assert answers == [{440: {"depots": {}}}]
        assert client.threads["product_info"] == threading.get_ident()

    def test_log_off_times_out_without_a_pump(self):
        client = FakeClient()
        t = self._opened(client)
        t.call_timeout = 0.05

        caller_errors = []

        def call():
            try:
                t.logoff()
            except Exception as e:
                caller_errors.append(e)

        caller = threading.Thread(target=call)
        caller.start()
        caller.join(2)

        assert len(caller_errors) == 1
        assert "logout" not in client.log


class TestProductInfo:
    def test_product_info_unwraps_appinfo(self):
        client = FakeClient({"apps": {"440": {"appinfo": {"depots": {}}}, 570: {"depots": {"x": 1}}}})
        t = make_transport(client, product_info_timeout=20)

        apps = t._product_info_now([440, 570])

        assert apps == {440: {"depots": {}}, 570: {"depots": {"x": 1}}}
        assert client.calls == [([440, 570], 20)]

    def test_missing_response_is_transport_failure(self):
        t = make_transport(FakeClient(None))
        with pytest.raises(TransportFailure):
            t._product_info_now([1])

    def test_not_connected_is_transport_failure(self):
        t = make_transport(FakeClient())
        with pytest.raises(TransportFailure):
            t.get_product_info([1])

    def test_logon_result_is_queued_as_event(self):
        client = FakeClient()
        t = make_transport(client)
        t.logon_anonymous()

        assert t._events.get_nowait() == LogonResult(result="OK")
        assert set(client.handlers) == {"connected", "disconnected", "logged_off"}

    def test_disconnect_fails_waiting_requests(self):
        t = make_transport(FakeClient())
        future: Future = Future()
        t._pending.add(future)

        t._fail_pending("Disconnected")

        with pytest.raises(TransportFailure):
            future.result(timeout=0)

    def test_settle_ignores_already_finished_future(self):
        future: Future = Future()
        _settle(future, error=TransportFailure("gone"))
        _settle(future, result={"late": 1})
        assert isinstance(future.exception(timeout=0), TransportFailure)
