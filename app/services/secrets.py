"""
模块职能：
- VNC 连接密码的应用层加解密：密文入库（vnc_machines.password_encrypted），
  明文只在组装响应时出现在内存中。
- 密钥由 SECRET_KEY 经 SHA-256 派生为 Fernet key；更换 SECRET_KEY 后旧密文无法解开，
  decrypt_password 返回 None 并打点 secret_decrypt_failed。
"""
import base64, hashlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from app.core.security import get_secret_key
from app.infra.logger import emit_warning


def _derive_fernet_key(raw: str) -> bytes:
    h = hashlib.sha256(raw.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(h)


def _fernet() -> Fernet:
    return Fernet(_derive_fernet_key(get_secret_key()))


def encrypt_password(plain: Optional[str]) -> Optional[str]:
    if not plain:
        return None
    return _fernet().encrypt(plain.encode("utf-8")).decode("ascii")


def decrypt_password(token: Optional[str], machine_id: Optional[str] = None) -> Optional[str]:
    if not token:
        return None
    try:
        return _fernet().decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken:
        emit_warning("secret_decrypt_failed", machine_id=machine_id)
        return None
