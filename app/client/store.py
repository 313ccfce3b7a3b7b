"""
模块职能：本地键值存储（对应浏览器 localStorage），以单个 JSON 文件落盘。

尽力而为：文件缺失 / 内容损坏 / 目录不可写时只打 WARNING，读取返回默认值，
绝不向调用方抛错。

日志：local_store_load_failed / local_store_save_failed
"""
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from app.infra.logger import emit_warning

DEFAULT_PATH = os.getenv("CLIENT_STATE_FILE", str(Path.home() / ".vnc-manager" / "state.json"))


class LocalStore:
    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or DEFAULT_PATH)
        self._data: Dict[str, Any] = {}
        self._load()

    def _load(self):
        if not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            emit_warning("local_store_load_failed", path=str(self.path), error=str(e))
            return
        if isinstance(raw, dict):
            self._data = raw
        else:
            emit_warning("local_store_load_failed", path=str(self.path), error="not an object")

    def _flush(self):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(self._data, ensure_ascii=False, default=str), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            emit_warning("local_store_save_failed", path=str(self.path), error=str(e))

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any):
        self._data[key] = value
        self._flush()

    def update(self, values: Dict[str, Any]):
        self._data.update(values)
        self._flush()

    def remove(self, *keys: str):
        for k in keys:
            self._data.pop(k, None)
        self._flush()
