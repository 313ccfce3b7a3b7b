"""
模块职能：拼接内嵌 noVNC 查看器地址（只构造 URL，不解析查看器的任何响应）。

    {scheme}://{viewer_host}:{viewer_port}/vnc.html?host=..&port=..&password=..
        &autoconnect=true&resize=scale&reconnect=true

viewer_host 缺省为页面所在主机（VIEWER_HOST），viewer_port 缺省 6080（VIEWER_PORT）。
"""
import os
from typing import Optional
from urllib.parse import urlencode

VIEWER_SCHEME = os.getenv("VIEWER_SCHEME", "http")
VIEWER_HOST = os.getenv("VIEWER_HOST", "localhost")
VIEWER_PORT = int(os.getenv("VIEWER_PORT", "6080"))


def viewer_url(machine: dict, *, scheme: Optional[str] = None, viewer_host: Optional[str] = None,
               viewer_port: Optional[int] = None, auto_reconnect: bool = True) -> str:
    query = {
        "host": machine["host"],
        "port": machine["port"],
        "password": machine.get("password") or "",
        "autoconnect": "true",
        "resize": "scale",
        "reconnect": "true" if auto_reconnect else "false",
    }
    return "{}://{}:{}/vnc.html?{}".format(
        scheme or VIEWER_SCHEME,
        viewer_host or VIEWER_HOST,
        viewer_port or VIEWER_PORT,
        urlencode(query),
    )
