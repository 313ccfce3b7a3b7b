"""
模块职能：入参模型（Pydantic v2），API 层与导入逻辑共用同一套校验。

- MachineIn：创建机器；port 必须为 [1, 65535] 内的整数，缺省 5900
- MachinePatch：部分更新；只有请求里出现的字段才会被修改（model_fields_set）
- ExportedMachine：导出 / 导入文件中的单条记录
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_VNC_PORT = 5900

PortField = Field(default=DEFAULT_VNC_PORT, ge=1, le=65535, strict=True)


def _clean_str_list(values: Optional[List[str]]) -> Optional[List[str]]:
    if values is None:
        return None
    out: List[str] = []
    for v in values:
        v = v.strip()
        if v and v not in out:
            out.append(v)
    return out


class MachineIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1, max_length=255)
    host: str = Field(min_length=1, max_length=255)
    port: int = PortField
    password: Optional[str] = None
    is_shared: bool = Field(default=False, alias="isShared")
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    groups: Optional[List[str]] = None

    @field_validator("name", "host")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("tags", "groups")
    @classmethod
    def _dedupe(cls, v):
        return _clean_str_list(v)


class MachinePatch(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    host: Optional[str] = Field(default=None, min_length=1, max_length=255)
    port: Optional[int] = Field(default=None, ge=1, le=65535, strict=True)
    password: Optional[str] = None
    is_shared: Optional[bool] = Field(default=None, alias="isShared")
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    groups: Optional[List[str]] = None

    @field_validator("name", "host")
    @classmethod
    def _not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            raise ValueError("must not be null")
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("port")
    @classmethod
    def _port_not_null(cls, v: Optional[int]) -> Optional[int]:
        if v is None:
            raise ValueError("must not be null")
        return v

    @field_validator("tags", "groups")
    @classmethod
    def _dedupe(cls, v):
        return _clean_str_list(v)

    def changes(self) -> dict:
        """只包含请求中显式出现的字段（按属性名）。"""
        return {k: getattr(self, k) for k in self.model_fields_set}


class ExportedMachine(BaseModel):
    name: str
    host: str
    port: int
    password: Optional[str] = None
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    groups: List[str] = Field(default_factory=list)
    isShared: bool = False
