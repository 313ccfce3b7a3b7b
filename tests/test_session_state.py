# tests/test_session_state.py
"""前端会话状态机（纯本地，不需要服务端）。"""
import itertools
import json
from urllib.parse import parse_qs, urlparse

import pytest

from app.client.session_state import (
    K_ACTIVE, K_DEFAULT_PORT, K_SESSIONS, K_SIDEBAR, MachineFilter, SessionState, all_groups,
)
from app.client.store import LocalStore
from app.client.viewer import viewer_url


def _machine(mid, **kw):
    m = {"id": mid, "name": mid, "host": f"{mid}.lan", "port": 5900, "ownerId": None,
         "groups": [], "tags": [], "isFavorite": False, "password": None}
    m.update(kw)
    return m


@pytest.fixture
def store(tmp_path):
    return LocalStore(str(tmp_path / "state.json"))


@pytest.fixture
def state(store):
    ticks = itertools.count(1000)
    return SessionState(store, clock=lambda: next(ticks))


def test_open_twice_keeps_one_tab(state):
    a = state.open(_machine("a"))
    again = state.open(_machine("a"))
    assert again.id == a.id
    assert len(state.tabs) == 1
    assert state.active_id == a.id
    assert state.state_of("a") == "active"


def test_open_reactivates_background_tab(state):
    a = state.open(_machine("a"))
    b = state.open(_machine("b"))
    assert state.active_id == b.id
    assert state.state_of("a") == "background"

    assert state.open(_machine("a")).id == a.id
    assert [t.id for t in state.tabs] == [a.id, b.id]
    assert state.active_id == a.id
    assert state.state_of("b") == "background"
    assert state.state_of("zzz") == "closed"


def test_close_promotes_first_remaining(state):
    a = state.open(_machine("a"))
    b = state.open(_machine("b"))
    c = state.open(_machine("c"))

    # 关闭后台标签不影响当前标签
    assert state.close(a.id) == c.id
    assert state.close(c.id) == b.id
    assert state.close("missing") == b.id

    state.toggle_sidebar()
    assert state.sidebar_open is False
    assert state.close(b.id) is None
    assert state.has_sessions is False
    assert state.sidebar_open is True


def test_state_persists_and_reloads(store, state, tmp_path):
    state.open(_machine("a"))
    b = state.open(_machine("b"))
    state.toggle_section("shared")

    reloaded = SessionState.load(LocalStore(str(tmp_path / "state.json")))
    assert [t.machine_id for t in reloaded.tabs] == ["a", "b"]
    assert reloaded.active_id == b.id
    assert reloaded.shared_expanded is False
    assert reloaded.mine_expanded is True


def test_corrupt_store_falls_back_to_defaults(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    st = SessionState.load(LocalStore(str(path)))
    assert st.tabs == [] and st.active_id is None
    assert st.sidebar_open is True
    assert st.default_port == 5900

    path.write_text(json.dumps({
        K_SESSIONS: [{"id": "t1", "machine": {"id": "m1"}}, "junk", {"id": 3}, {"id": "t2", "machine": {"id": "m1"}}],
        K_ACTIVE: "nope",
        K_SIDEBAR: "maybe",
        K_DEFAULT_PORT: 99999,
    }), encoding="utf-8")
    st = SessionState.load(LocalStore(str(path)))
    assert [t.id for t in st.tabs] == ["t1"]
    assert st.active_id == "t1"
    assert st.sidebar_open is True
    assert st.default_port == 5900


def test_quick_connect_uses_default_port(state):
    assert state.quick_connect("   ") is None
    tab = state.quick_connect("10.0.0.7")
    assert tab.machine_id.startswith("quick-")
    assert tab.machine["port"] == 5900
    assert tab.machine["name"] == "Quick: 10.0.0.7:5900"
    assert state.active_id == tab.id


def test_reconcile_drops_vanished_machines(state):
    a = state.open(_machine("a"))
    b = state.open(_machine("b"))
    q = state.quick_connect("10.0.0.8", 5901)

    dropped = state.reconcile([_machine("a", name="renamed")])
    assert dropped == [b.id]
    assert [t.id for t in state.tabs] == [a.id, q.id]
    assert state.tab_for("a").machine["name"] == "renamed"
    assert state.active_id == q.id


def test_reset_preferences_keeps_tabs(store, state):
    tab = state.open(_machine("a"))
    state.toggle_section("mine")
    state.dark_mode = True
    state.save()

    state.reset_preferences()
    assert state.mine_expanded is True
    assert state.dark_mode is False
    assert state.active_id == tab.id
    assert store.get(K_ACTIVE) == tab.id


def test_toggle_unknown_section(state):
    with pytest.raises(ValueError):
        state.toggle_section("nope")


def test_viewer_url():
    url = viewer_url(_machine("a", host="10.0.0.5", port=5901, password="p&w"),
                     scheme="https", viewer_host="viewer.local", viewer_port=6080, auto_reconnect=False)
    parsed = urlparse(url)
    assert (parsed.scheme, parsed.netloc, parsed.path) == ("https", "viewer.local:6080", "/vnc.html")
    q = parse_qs(parsed.query)
    assert q["host"] == ["10.0.0.5"]
    assert q["port"] == ["5901"]
    assert q["password"] == ["p&w"]
    assert q["autoconnect"] == ["true"]
    assert q["resize"] == ["scale"]
    assert q["reconnect"] == ["false"]


def test_filter_and_split():
    me = "u1"
    machines = [
        _machine("s1", name="Build Server", groups=["ci"], tags=["linux"]),
        _machine("p1", name="Laptop", ownerId=me, groups=["home"], isFavorite=True, notes="desk"),
        _machine("x1", name="Foreign", ownerId="u2", groups=["secret"]),
    ]
    assert [m["id"] for m in MachineFilter(search="LINUX").apply(machines)] == ["s1"]
    assert [m["id"] for m in MachineFilter(search="desk").apply(machines)] == ["p1"]
    assert [m["id"] for m in MachineFilter(groups=["home", "ci"]).apply(machines)] == ["s1", "p1"]
    assert [m["id"] for m in MachineFilter(favorites_only=True).apply(machines)] == ["p1"]

    parts = MachineFilter().split(machines, me)
    assert [m["id"] for m in parts["shared"]] == ["s1"]
    assert [m["id"] for m in parts["personal"]] == ["p1"]
    assert [m["id"] for m in parts["favorites"]] == ["p1"]

    assert all_groups(machines, me) == ["ci", "home"]
