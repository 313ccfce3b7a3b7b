# tests/test_policy.py
import pytest

from app.core.errors import Conflict, Forbidden
from app.core.models import UserRole
from app.core.policy import (
    DENY_ACCESS, DENY_SHARED_CREATE, DENY_SHARED_DELETE, DENY_SHARED_EDIT,
    Action, Actor, can_create, decide, ensure, ensure_create,
)

OWNER = Actor(id="u1")
STRANGER = Actor(id="u2")
DELEGATE = Actor(id="u3", can_manage_shared_flag=True)
ADMIN = Actor(id="a1", role=UserRole.ADMIN)


@pytest.mark.parametrize("actor", [OWNER, STRANGER, DELEGATE, ADMIN])
def test_everyone_reads_shared(actor):
    assert decide(actor, None, Action.READ).allowed


@pytest.mark.parametrize("action", list(Action))
def test_stranger_is_denied_everything_on_personal(action):
    d = decide(STRANGER, "u1", action)
    assert not d.allowed
    assert d.reason == DENY_ACCESS


@pytest.mark.parametrize("action", [Action.READ, Action.EDIT, Action.DELETE])
def test_owner_controls_personal(action):
    assert decide(OWNER, "u1", action).allowed


def test_shared_edit_and_delete_need_capability():
    assert decide(OWNER, None, Action.EDIT).reason == DENY_SHARED_EDIT
    assert decide(OWNER, None, Action.DELETE).reason == DENY_SHARED_DELETE
    for actor in (DELEGATE, ADMIN):
        assert decide(actor, None, Action.EDIT).allowed
        assert decide(actor, None, Action.DELETE).allowed


def test_reshare_needs_capability_and_access():
    assert decide(OWNER, "u1", Action.RESHARE).reason == DENY_SHARED_CREATE
    assert decide(DELEGATE, "u3", Action.RESHARE).allowed
    assert decide(DELEGATE, None, Action.RESHARE).allowed
    assert decide(DELEGATE, "u1", Action.RESHARE).reason == DENY_ACCESS


def test_admin_override_is_opt_in(monkeypatch):
    assert not decide(ADMIN, "u1", Action.EDIT).allowed
    assert decide(ADMIN, "u1", Action.EDIT, admin_override=True).allowed
    assert not decide(DELEGATE, "u1", Action.EDIT, admin_override=True).allowed

    monkeypatch.setenv("ADMIN_OVERRIDES_PERSONAL", "true")
    assert decide(ADMIN, "u1", Action.DELETE).allowed
    assert decide(ADMIN, "u1", Action.READ).allowed


def test_create_rules():
    assert can_create(OWNER, shared=False)
    assert not can_create(OWNER, shared=True)
    assert can_create(DELEGATE, shared=True)
    assert can_create(ADMIN, shared=True)
    with pytest.raises(Forbidden) as ei:
        ensure_create(OWNER, True)
    assert ei.value.message == DENY_SHARED_CREATE


def test_ensure_raises_forbidden_with_reason():
    with pytest.raises(Forbidden) as ei:
        ensure(STRANGER, "u1", Action.READ)
    assert ei.value.status_code == 403
    assert ei.value.message == DENY_ACCESS
    ensure(OWNER, "u1", Action.DELETE)
    assert Conflict("x").status_code == 409
