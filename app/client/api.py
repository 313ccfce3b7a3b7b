"""
模块职能：后端 REST API 的同步客户端（httpx），并把“打开机器”串成前端的完整流程：
    记录 connect 流水（失败忽略，不阻塞打开） → 打开/激活本地标签

- 认证：login/register 成功后保存 token，后续请求带 Authorization: Bearer
- 非 2xx 一律抛 ApiError(status_code, detail)

日志：client_api_error / client_activity_log_ignored
"""
import os
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from app.client.session_state import QUICK_PREFIX, SessionState, Tab
from app.infra.logger import emit, emit_warning

API_URL = os.getenv("VNC_API_URL", "http://localhost:4000/api")


class ApiError(Exception):
    def __init__(self, status_code: int, detail: Any):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}")


class ApiClient:
    def __init__(self, http: Optional[httpx.Client] = None, base_url: str = API_URL,
                 prefix: str = "", token: Optional[str] = None):
        # 传入现成的 httpx.Client（例如测试里的 TestClient）时，prefix 用于补全 /api
        self.http = http or httpx.Client(base_url=base_url, timeout=10.0)
        self.prefix = prefix
        self.token = token

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def _request(self, method: str, path: str, **kwargs) -> Any:
        resp = self.http.request(method, f"{self.prefix}{path}", headers=self._headers(), **kwargs)
        if resp.status_code >= 400:
            try:
                body = resp.json()
                detail = body.get("detail") if isinstance(body, dict) else body
            except ValueError:
                detail = resp.text
            emit("client_api_error", method=method, path=path, status_code=resp.status_code)
            raise ApiError(resp.status_code, detail)
        return resp.json()

    # ---- 认证 ----
    def login(self, email: str, password: str) -> dict:
        data = self._request("POST", "/auth/login", json={"email": email, "password": password})
        self.token = data["token"]
        return data["user"]

    def register(self, email: str, password: str) -> dict:
        data = self._request("POST", "/auth/register", json={"email": email, "password": password})
        self.token = data["token"]
        return data["user"]

    def me(self) -> dict:
        return self._request("GET", "/auth/me")["user"]

    # ---- 机器 ----
    def list_machines(self, scope: str = "all") -> List[dict]:
        path = "/vnc-machines" if scope == "all" else f"/vnc-machines/{scope}"
        return self._request("GET", path)["machines"]

    def create_machine(self, **fields) -> dict:
        return self._request("POST", "/vnc-machines", json=fields)["machine"]

    def update_machine(self, machine_id: str, **fields) -> dict:
        return self._request("PATCH", f"/vnc-machines/{machine_id}", json=fields)["machine"]

    def delete_machine(self, machine_id: str) -> None:
        self._request("DELETE", f"/vnc-machines/{machine_id}")

    def export_machines(self, include_passwords: bool = False) -> List[dict]:
        params = {"include_passwords": "true"} if include_passwords else None
        return self._request("GET", "/vnc-machines/export", params=params)

    def import_machines(self, entries: List[dict]) -> dict:
        return self._request("POST", "/vnc-machines/import", json=entries)

    def remove_group(self, group: str) -> dict:
        return self._request("DELETE", f"/vnc-machines/groups/{quote(group, safe='')}")

    # ---- 收藏 / 流水 ----
    def toggle_favorite(self, machine_id: str) -> bool:
        return self._request("POST", f"/favorites/{machine_id}")["isFavorite"]

    def list_favorites(self) -> List[dict]:
        return self._request("GET", "/favorites")["machines"]

    def log_activity(self, machine_id: str, action: str = "connect") -> dict:
        return self._request("POST", "/activity-logs", json={"machineId": machine_id, "action": action})["log"]

    def activity_logs(self, limit: int = 50, machine_id: Optional[str] = None) -> List[dict]:
        params: Dict[str, Any] = {"limit": limit}
        if machine_id:
            params["machineId"] = machine_id
        return self._request("GET", "/activity-logs", params=params)["logs"]

    # ---- 前端流程 ----
    def open_machine(self, state: SessionState, machine: dict) -> Tab:
        if not str(machine["id"]).startswith(QUICK_PREFIX):
            try:
                self.log_activity(machine["id"], "connect")
            except (ApiError, httpx.HTTPError) as e:
                # 打点失败不影响打开查看器
                emit_warning("client_activity_log_ignored", machine_id=machine["id"], error=str(e))
        return state.open(machine)

    def refresh(self, state: SessionState) -> List[dict]:
        machines = self.list_machines()
        state.reconcile(machines)
        return machines
