import threading
import time

import pytest

from procnet_inspect.collectors.loop import collect_once, collector_loop
from procnet_inspect.collectors.resolver import SocketResolver
from procnet_inspect.config import CFG
from procnet_inspect.state import SocketState
from procnet_inspect.top.command import TopConfig
from procnet_inspect.top.stream import Stream
from procnet_inspect.web import create_app


@pytest.fixture
def state(fake_proc):
    st = SocketState()
    assert collect_once(SocketResolver(fake_proc), st) == 5
    return st


@pytest.fixture
def client(fake_proc, fake_top, state):
    cfg = CFG(proc_root=fake_proc, top_exec=fake_top)
    return create_app(cfg, state).test_client()


def test_sockets(client):
    r = client.get("/api/sockets")
    assert r.status_code == 200
    body = r.get_json()
    assert body["error"] is None
    assert len(body["sockets"]) == 5


def test_sockets_filtered(client):
    body = client.get("/api/sockets?program=sshd&protocol=tcp6").get_json()
    assert [s["inode"] for s in body["sockets"]] == [24100]
    body = client.get("/api/sockets?local_port=22&limit=1").get_json()
    assert [s["inode"] for s in body["sockets"]] == [99999]


@pytest.mark.parametrize("query", [
    "program=sshd&pid=100",
    "local_port=22&remote_port=80",
    "pid=abc",
    "protocol=udp",
])
def test_bad_filters_are_400(client, query):
    r = client.get("/api/sockets?" + query)
    assert r.status_code == 400
    assert "error" in r.get_json()


def test_processes_one_shot(client):
    body = client.get("/api/processes?program=sqld").get_json()
    assert [p["pid"] for p in body["processes"]] == [4242]
    assert body["processes"][0]["virt"] == "54 GB"


def test_processes_from_stream(fake_proc, fake_top, state):
    state.stream = Stream(TopConfig(exec_path=fake_top, interval=0.05)).start(timeout=10)
    try:
        c = create_app(CFG(proc_root=fake_proc, top_exec="/nonexistent"), state).test_client()
        body = c.get("/api/processes").get_json()
        assert [p["pid"] for p in body["processes"]] == [1, 4242]
        assert c.get("/api/status").get_json()["stream"] == "running"
    finally:
        state.stream.stop()


def test_processes_missing_top(fake_proc, state, tmp_path):
    c = create_app(CFG(proc_root=fake_proc, top_exec=str(tmp_path / "nope")), state).test_client()
    assert c.get("/api/processes").status_code == 503


def test_collection_failure_keeps_previous(state, tmp_path):
    assert collect_once(SocketResolver(str(tmp_path)), state) == -1
    assert len(state.snapshot()) == 5
    assert state.last_error


def test_collector_loop_stops(fake_proc):
    st = SocketState()
    stop = threading.Event()
    t = threading.Thread(target=collector_loop, args=(CFG(proc_root=fake_proc), st, 0.01, stop))
    t.start()
    for _ in range(200):
        if st.snapshot():
            break
        stop.wait(0.01)
    stop.set()
    t.join(timeout=5)
    assert not t.is_alive()
    assert len(st.snapshot()) == 5


def test_stream_failure_is_surfaced(fake_proc, fake_top, state, monkeypatch):
    monkeypatch.setenv("FAKE_TOP_EXIT", "3")
    state.stream = Stream(TopConfig(exec_path=fake_top, limit=2, interval=0.05)).start(timeout=10)
    try:
        c = create_app(CFG(proc_root=fake_proc, top_exec="/nonexistent"), state).test_client()
        failure = None
        for _ in range(200):
            failure = c.get("/api/status").get_json()["stream_error"]
            if failure:
                break
            time.sleep(0.05)
        assert "status 3" in failure
        r = c.get("/api/processes")
        assert r.status_code == 503
        assert "status 3" in r.get_json()["error"]
        # the error has been taken off the stream but stays visible
        assert c.get("/api/status").get_json()["stream_error"] == failure
    finally:
        state.stream.stop()
