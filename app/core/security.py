# app/core/security.py
"""封装口令哈希/校验（passlib[bcrypt]）与 JWT 签发/解析（PyJWT, HS256）。

create_access_token() 把 sub/email/role/exp 写入 JWT 负载；
decode_access_token() 校验签名与过期，异常原样抛给调用方（app.core.context 负责转 401）。"""

import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Any

import jwt  # PyJWT
from passlib.context import CryptContext

ALGORITHM = "HS256"
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# 默认 7 天
DEFAULT_EXPIRE_MINUTES = 7 * 24 * 60


def get_secret_key() -> str:
    # 老环境兼容 JWT_SECRET
    return os.getenv("SECRET_KEY") or os.getenv("JWT_SECRET") or "dev-secret-change-me"


def get_access_token_expire_minutes() -> int:
    try:
        return int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(DEFAULT_EXPIRE_MINUTES)))
    except ValueError:
        return DEFAULT_EXPIRE_MINUTES


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_access_token(payload: Dict[str, Any]) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=get_access_token_expire_minutes())
    to_encode = dict(payload)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, get_secret_key(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, get_secret_key(), algorithms=[ALGORITHM])
