"""
模块职能：前端会话（标签页）状态机 + 界面状态持久化 + 机器列表筛选。

每台机器的状态：closed → open(active | background)
- open(machine)：该机器已有标签 → 直接激活，不重复创建；否则追加新标签并激活
- close(tab_id)：关闭的是当前标签 → 剩余标签中第一个（保持顺序）成为当前；
  全部关闭 → 无会话，且侧边栏自动展开
- 后台标签保持“挂载”，不因切换而重连；查看器连接状态不在这里建模

持久化（LocalStore，键名与 Web 端一致）：
    vnc_sessions / active_vnc_session / sidebar_open / shared_sessions_expanded /
    my_sessions_expanded / dark_mode / default_vnc_port / auto_reconnect /
    session_timeout_minutes
读取时任何损坏/缺失的条目都静默回落到默认值。
"""
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from app.client.store import LocalStore
from app.client.viewer import viewer_url
from app.core.schemas import DEFAULT_VNC_PORT
from app.infra.logger import emit

K_SESSIONS = "vnc_sessions"
K_ACTIVE = "active_vnc_session"
K_SIDEBAR = "sidebar_open"
K_SHARED_EXPANDED = "shared_sessions_expanded"
K_MINE_EXPANDED = "my_sessions_expanded"
K_DARK = "dark_mode"
K_DEFAULT_PORT = "default_vnc_port"
K_AUTO_RECONNECT = "auto_reconnect"
K_SESSION_TIMEOUT = "session_timeout_minutes"

PREFERENCE_KEYS = (
    K_DARK, K_DEFAULT_PORT, K_AUTO_RECONNECT, K_SESSION_TIMEOUT,
    K_SIDEBAR, K_SHARED_EXPANDED, K_MINE_EXPANDED,
)

QUICK_PREFIX = "quick-"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _as_bool(v, default: bool) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, str) and v in ("true", "false"):
        return v == "true"
    return default


def _as_int(v, default: int, lo: int = 0, hi: Optional[int] = None) -> int:
    try:
        n = int(v)
    except (TypeError, ValueError):
        return default
    if n < lo or (hi is not None and n > hi):
        return default
    return n


@dataclass
class Tab:
    id: str
    machine: Dict

    @property
    def machine_id(self) -> str:
        return self.machine["id"]

    def to_dict(self) -> dict:
        return {"id": self.id, "machine": self.machine}


class SessionState:
    def __init__(self, store: LocalStore, clock: Callable[[], int] = _now_ms):
        self.store = store
        self._clock = clock
        self.tabs: List[Tab] = []
        self.active_id: Optional[str] = None
        self.sidebar_open = True
        self.shared_expanded = True
        self.mine_expanded = True
        self.dark_mode = False
        self.default_port = DEFAULT_VNC_PORT
        self.auto_reconnect = True
        self.session_timeout_minutes = 0  # 0 = 不超时

    # ---- 持久化 ----
    @classmethod
    def load(cls, store: LocalStore, clock: Callable[[], int] = _now_ms) -> "SessionState":
        st = cls(store, clock)
        raw_tabs = store.get(K_SESSIONS, [])
        if isinstance(raw_tabs, list):
            seen = set()
            for item in raw_tabs:
                if not isinstance(item, dict):
                    continue
                tid, machine = item.get("id"), item.get("machine")
                if not isinstance(tid, str) or not isinstance(machine, dict) or "id" not in machine:
                    continue
                if machine["id"] in seen:
                    continue
                seen.add(machine["id"])
                st.tabs.append(Tab(id=tid, machine=machine))

        active = store.get(K_ACTIVE)
        if st._find(active) is not None:
            st.active_id = active
        else:
            st.active_id = st.tabs[0].id if st.tabs else None

        st.sidebar_open = _as_bool(store.get(K_SIDEBAR), True)
        st.shared_expanded = _as_bool(store.get(K_SHARED_EXPANDED), True)
        st.mine_expanded = _as_bool(store.get(K_MINE_EXPANDED), True)
        st.dark_mode = _as_bool(store.get(K_DARK), False)
        st.default_port = _as_int(store.get(K_DEFAULT_PORT), DEFAULT_VNC_PORT, 1, 65535)
        st.auto_reconnect = _as_bool(store.get(K_AUTO_RECONNECT), True)
        st.session_timeout_minutes = _as_int(store.get(K_SESSION_TIMEOUT), 0)
        emit("client_state_loaded", tabs=len(st.tabs), active=st.active_id)
        return st

    def save(self):
        self.store.update({
            K_SESSIONS: [t.to_dict() for t in self.tabs],
            K_SIDEBAR: self.sidebar_open,
            K_SHARED_EXPANDED: self.shared_expanded,
            K_MINE_EXPANDED: self.mine_expanded,
            K_DARK: self.dark_mode,
            K_DEFAULT_PORT: self.default_port,
            K_AUTO_RECONNECT: self.auto_reconnect,
            K_SESSION_TIMEOUT: self.session_timeout_minutes,
        })
        if self.active_id:
            self.store.set(K_ACTIVE, self.active_id)
        else:
            self.store.remove(K_ACTIVE)

    # ---- 查询 ----
    def _find(self, tab_id) -> Optional[Tab]:
        for t in self.tabs:
            if t.id == tab_id:
                return t
        return None

    def tab_for(self, machine_id: str) -> Optional[Tab]:
        for t in self.tabs:
            if t.machine_id == machine_id:
                return t
        return None

    @property
    def active_tab(self) -> Optional[Tab]:
        return self._find(self.active_id)

    @property
    def has_sessions(self) -> bool:
        return bool(self.tabs)

    def state_of(self, machine_id: str) -> str:
        t = self.tab_for(machine_id)
        if t is None:
            return "closed"
        return "active" if t.id == self.active_id else "background"

    # ---- 状态迁移 ----
    def open(self, machine: dict) -> Tab:
        existing = self.tab_for(machine["id"])
        if existing:
            self.active_id = existing.id
            self.save()
            emit("client_tab_reactivate", tab_id=existing.id, machine_id=machine["id"])
            return existing

        tab = Tab(id=f"session-{self._clock()}-{machine['id']}", machine=dict(machine))
        self.tabs.append(tab)
        self.active_id = tab.id
        self.save()
        emit("client_tab_open", tab_id=tab.id, machine_id=machine["id"])
        return tab

    def activate(self, tab_id: str) -> bool:
        if self._find(tab_id) is None:
            return False
        self.active_id = tab_id
        self.store.set(K_ACTIVE, tab_id)
        return True

    def close(self, tab_id: str) -> Optional[str]:
        """关闭标签，返回新的当前标签 id（无会话时为 None）。"""
        if self._find(tab_id) is None:
            return self.active_id
        self.tabs = [t for t in self.tabs if t.id != tab_id]
        if self.active_id == tab_id:
            self.active_id = self.tabs[0].id if self.tabs else None
        if not self.tabs and not self.sidebar_open:
            self.sidebar_open = True
        self.save()
        emit("client_tab_close", tab_id=tab_id, active=self.active_id, remaining=len(self.tabs))
        return self.active_id

    def quick_connect(self, host: str, port: Optional[int] = None) -> Optional[Tab]:
        host = (host or "").strip()
        if not host:
            return None
        port = port or self.default_port
        now = self._clock()
        machine = {
            "id": f"{QUICK_PREFIX}{now}",
            "name": f"Quick: {host}:{port}",
            "host": host,
            "port": port,
            "ownerId": None,
        }
        return self.open(machine)

    def reconcile(self, machines: Iterable[dict]) -> List[str]:
        """
        用服务器最新列表刷新标签里的机器快照；服务器上已不可见的机器对应的标签被关闭
        （快速连接的临时标签除外）。返回被关闭的标签 id。
        """
        by_id = {m["id"]: m for m in machines}
        dropped = []
        for t in list(self.tabs):
            if t.machine_id.startswith(QUICK_PREFIX):
                continue
            fresh = by_id.get(t.machine_id)
            if fresh is None:
                dropped.append(t.id)
            else:
                t.machine = dict(fresh)
        for tid in dropped:
            self.tabs = [t for t in self.tabs if t.id != tid]
        if self._find(self.active_id) is None:
            self.active_id = self.tabs[0].id if self.tabs else None
        self.save()
        if dropped:
            emit("client_tabs_reconciled", dropped=len(dropped), remaining=len(self.tabs))
        return dropped

    # ---- 界面偏好 ----
    def toggle_sidebar(self) -> bool:
        self.sidebar_open = not self.sidebar_open
        self.store.set(K_SIDEBAR, self.sidebar_open)
        return self.sidebar_open

    def toggle_section(self, section: str) -> bool:
        if section == "shared":
            self.shared_expanded = not self.shared_expanded
            self.store.set(K_SHARED_EXPANDED, self.shared_expanded)
            return self.shared_expanded
        if section == "mine":
            self.mine_expanded = not self.mine_expanded
            self.store.set(K_MINE_EXPANDED, self.mine_expanded)
            return self.mine_expanded
        raise ValueError(f"unknown section: {section}")

    def reset_preferences(self):
        # 清空偏好；标签与当前标签保留
        self.store.remove(*PREFERENCE_KEYS)
        fresh = SessionState(self.store, self._clock)
        for name in ("sidebar_open", "shared_expanded", "mine_expanded", "dark_mode",
                     "default_port", "auto_reconnect", "session_timeout_minutes"):
            setattr(self, name, getattr(fresh, name))

    def viewer_url(self, tab: Tab, **kwargs) -> str:
        return viewer_url(tab.machine, auto_reconnect=self.auto_reconnect, **kwargs)


@dataclass
class MachineFilter:
    search: str = ""
    groups: List[str] = field(default_factory=list)
    favorites_only: bool = False

    def matches(self, m: dict) -> bool:
        q = self.search.strip().lower()
        if q:
            hay = [m.get("name") or "", m.get("host") or "", m.get("notes") or ""]
            hay += m.get("tags") or []
            if not any(q in h.lower() for h in hay):
                return False
        if self.groups:
            mine = m.get("groups") or []
            if not any(g in mine for g in self.groups):
                return False
        if self.favorites_only and not m.get("isFavorite"):
            return False
        return True

    def apply(self, machines: Iterable[dict]) -> List[dict]:
        return [m for m in machines if self.matches(m)]

    def split(self, machines: List[dict], user_id: str) -> Dict[str, List[dict]]:
        return {
            "shared": self.apply(m for m in machines if m.get("ownerId") is None),
            "personal": self.apply(m for m in machines if m.get("ownerId") == user_id),
            "favorites": self.apply(m for m in machines if m.get("isFavorite")),
        }


def all_groups(machines: Iterable[dict], user_id: str) -> List[str]:
    found = set()
    for m in machines:
        if m.get("ownerId") is None or m.get("ownerId") == user_id:
            found.update(m.get("groups") or [])
    return sorted(found)
