"""
模块职能：
- VNC 机器登记簿：列表（all / shared / personal）、详情、创建、部分更新、删除、导出、导入
- 分组维护：remove_group 把某分组从所有可编辑机器上摘除
- 机器分两池：owner_id 为空 = 共享；owner_id = 用户 = 个人
- 每条返回记录按当前用户附带 isFavorite（与收藏表做集合匹配，不落在机器表上）

授权：一律先经 app.core.policy 判定，再写库；判定失败不产生任何写入。

并发：更新/删除使用条件语句
    UPDATE ... WHERE id = :id AND owner_id IS <判定时看到的 owner>
rowcount 为 0 说明判定之后归属被并发修改，整体回滚并返回 409。

日志：
- machine_list / machine_create / machine_update / machine_delete /
  machine_conflict / machine_export / machine_import / machine_import_item_failed /
  machine_group_remove
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from pydantic import ValidationError
from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from app.core.errors import BadRequest, Conflict, Forbidden, NotFound
from app.core.models import ActivityAction, ActivityLog, Favorite, Machine, as_utc, dump_list
from app.core.policy import Action, Actor, ensure, ensure_create
from app.core.schemas import DEFAULT_VNC_PORT, ExportedMachine, MachineIn, MachinePatch
from app.services.secrets import decrypt_password, encrypt_password
from app.infra.logger import emit

SCOPES = ("all", "shared", "personal")


def to_dict(m: Machine, is_favorite: bool = False, include_password: bool = True) -> dict:
    d = {
        "id": m.id,
        "name": m.name,
        "host": m.host,
        "port": m.port,
        "ownerId": m.owner_id,
        "isShared": m.is_shared,
        "notes": m.notes,
        "tags": m.tags,
        "groups": m.groups,
        "lastAccessed": as_utc(m.last_accessed),
        "isFavorite": is_favorite,
        "createdAt": as_utc(m.created_at),
        "updatedAt": as_utc(m.updated_at),
    }
    if include_password:
        d["password"] = decrypt_password(m.password_encrypted, machine_id=m.id)
    return d


def favorite_ids(db: Session, user_id: str) -> Set[str]:
    rows = db.query(Favorite.machine_id).filter(Favorite.user_id == user_id).all()
    return {r[0] for r in rows}


def _owner_filter(owner_id: Optional[str]):
    return Machine.owner_id.is_(None) if owner_id is None else Machine.owner_id == owner_id


def _visible_query(db: Session, actor: Actor, scope: str):
    q = db.query(Machine)
    if scope == "shared":
        q = q.filter(Machine.owner_id.is_(None))
    elif scope == "personal":
        q = q.filter(Machine.owner_id == actor.id)
    else:
        q = q.filter((Machine.owner_id.is_(None)) | (Machine.owner_id == actor.id))
    return q.order_by(Machine.created_at.desc())


def list_machines(db: Session, actor: Actor, scope: str = "all") -> List[dict]:
    if scope not in SCOPES:
        scope = "all"
    favs = favorite_ids(db, actor.id)
    rows = _visible_query(db, actor, scope).all()
    emit("machine_list", user_id=actor.id, scope=scope, count=len(rows))
    return [to_dict(m, m.id in favs) for m in rows]


def load(db: Session, machine_id: str) -> Machine:
    m = db.get(Machine, machine_id)
    if not m:
        raise NotFound("VNC machine not found")
    return m


def load_readable(db: Session, actor: Actor, machine_id: str) -> Machine:
    m = load(db, machine_id)
    ensure(actor, m.owner_id, Action.READ)
    return m


def get_machine(db: Session, actor: Actor, machine_id: str) -> dict:
    m = load_readable(db, actor, machine_id)
    return to_dict(m, m.id in favorite_ids(db, actor.id))


def _append_log(db: Session, user_id: str, machine_id: str, action: ActivityAction):
    # 与主写操作同一事务，由调用方 commit
    db.add(ActivityLog(user_id=user_id, machine_id=machine_id, action=action.value))


def create_machine(db: Session, actor: Actor, inp: MachineIn,
                   action: ActivityAction = ActivityAction.CREATE) -> dict:
    ensure_create(actor, inp.is_shared)

    m = Machine(
        name=inp.name,
        host=inp.host,
        port=inp.port,
        password_encrypted=encrypt_password(inp.password),
        owner_id=None if inp.is_shared else actor.id,
        notes=inp.notes,
        tags=inp.tags,
        groups=inp.groups,
    )
    db.add(m)
    db.flush()
    _append_log(db, actor.id, m.id, action)
    db.commit()
    db.refresh(m)
    emit("machine_create", user_id=actor.id, machine_id=m.id, shared=m.is_shared, via=action.value)
    return to_dict(m, False)


def _build_values(changes: Dict, actor: Actor, current_owner: Optional[str]) -> Dict:
    values = {}
    for key in ("name", "host", "port", "notes"):
        if key in changes:
            values[getattr(Machine, key)] = changes[key]
    if "password" in changes:
        values[Machine.password_encrypted] = encrypt_password(changes["password"])
    if "tags" in changes:
        values[Machine.tags_json] = dump_list(changes["tags"])
    if "groups" in changes:
        values[Machine.groups_json] = dump_list(changes["groups"])
    if changes.get("is_shared") is not None:
        want_shared = changes["is_shared"]
        if want_shared and current_owner is not None:
            values[Machine.owner_id] = None
        elif not want_shared and current_owner is None:
            values[Machine.owner_id] = actor.id
    values[Machine.updated_at] = datetime.now(timezone.utc)
    return values


def update_machine(db: Session, actor: Actor, machine_id: str, patch: MachinePatch) -> dict:
    m = load(db, machine_id)
    checked_owner = m.owner_id
    ensure(actor, checked_owner, Action.EDIT)

    changes = patch.changes()
    want_shared = changes.get("is_shared")
    if want_shared is not None and want_shared != (checked_owner is None):
        # 共享 <-> 个人 切换：切换前后都需要共享管理能力
        ensure(actor, checked_owner, Action.RESHARE)

    values = _build_values(changes, actor, checked_owner)
    res = db.execute(
        update(Machine)
        .where(Machine.id == machine_id, _owner_filter(checked_owner))
        .values(values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        db.rollback()
        emit("machine_conflict", user_id=actor.id, machine_id=machine_id, op="update")
        raise Conflict("Machine was modified concurrently, please retry")

    _append_log(db, actor.id, machine_id, ActivityAction.UPDATE)
    db.commit()
    db.refresh(m)
    emit("machine_update", user_id=actor.id, machine_id=machine_id,
         fields=sorted(changes.keys()), shared=m.is_shared)
    return to_dict(m, m.id in favorite_ids(db, actor.id))


def delete_machine(db: Session, actor: Actor, machine_id: str) -> None:
    m = load(db, machine_id)
    checked_owner = m.owner_id
    ensure(actor, checked_owner, Action.DELETE)

    # 先写流水，再删行（同一事务）；流水中的 machine_id 在删除后不再可解析
    _append_log(db, actor.id, machine_id, ActivityAction.DELETE)
    db.flush()
    res = db.execute(
        delete(Machine)
        .where(Machine.id == machine_id, _owner_filter(checked_owner))
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        db.rollback()
        emit("machine_conflict", user_id=actor.id, machine_id=machine_id, op="delete")
        raise Conflict("Machine was modified concurrently, please retry")
    db.commit()
    emit("machine_delete", user_id=actor.id, machine_id=machine_id, shared=checked_owner is None)


def export_machines(db: Session, actor: Actor, include_passwords: bool = False) -> List[dict]:
    rows = _visible_query(db, actor, "all").all()
    out = []
    for m in rows:
        item = ExportedMachine(
            name=m.name, host=m.host, port=m.port, notes=m.notes,
            tags=m.tags, groups=m.groups, isShared=m.is_shared,
            password=decrypt_password(m.password_encrypted, machine_id=m.id) if include_passwords else None,
        )
        out.append(item.model_dump(exclude_none=True))
    emit("machine_export", user_id=actor.id, count=len(out), with_passwords=include_passwords)
    return out


def import_machines(db: Session, actor: Actor, entries: List) -> dict:
    """
    逐条导入为个人机器；单条失败只记录，不影响其余条目。
    缺省端口回落到 5900；文件里的 isShared 被忽略。
    """
    imported, errors = [], []
    for idx, entry in enumerate(entries):
        name = entry.get("name") if isinstance(entry, dict) else None
        try:
            if not isinstance(entry, dict):
                raise ValueError("entry must be an object")
            data = {k: entry.get(k) for k in ("name", "host", "password", "notes", "tags", "groups")
                    if entry.get(k) is not None}
            # 仅缺省 / null 回落默认端口；显式的非法端口照常报错
            port = entry.get("port")
            data["port"] = DEFAULT_VNC_PORT if port is None else port
            data["isShared"] = False
            inp = MachineIn.model_validate(data)
        except (ValidationError, ValueError) as e:
            errors.append({"index": idx, "name": name, "error": _short_error(e)})
            emit("machine_import_item_failed", user_id=actor.id, index=idx, name=name)
            continue
        imported.append(create_machine(db, actor, inp, action=ActivityAction.IMPORT))

    emit("machine_import", user_id=actor.id, imported=len(imported), failed=len(errors))
    return {"imported": len(imported), "failed": len(errors), "errors": errors, "machines": imported}


def remove_group(db: Session, actor: Actor, group: str) -> dict:
    """
    从当前用户可见的机器上移除某个分组。逐台走 update_machine（同样的授权、条件写入与 update 流水）；
    无编辑权限或并发冲突的机器跳过，不影响其余机器。
    """
    group = (group or "").strip()
    if not group:
        raise BadRequest("Group name is required")

    updated, skipped = [], []
    for m in _visible_query(db, actor, "all").all():
        current = m.groups
        if group not in current:
            continue
        remaining = [g for g in current if g != group]
        try:
            updated.append(update_machine(db, actor, m.id, MachinePatch(groups=remaining or None)))
        except (Forbidden, Conflict):
            skipped.append(m.id)

    emit("machine_group_remove", user_id=actor.id, group=group, updated=len(updated), skipped=len(skipped))
    return {"group": group, "updated": len(updated), "skipped": skipped, "machines": updated}


def _short_error(e: Exception) -> str:
    if isinstance(e, ValidationError):
        first = e.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc", ()))
        return f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))
    return str(e)
