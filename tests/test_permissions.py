import pytest

import invitations
import profiles
import staff
from auth import SessionContext
from errors import PermissionDenied
from models import Role
from permissions import allowed_pages, check_access, check_action


@pytest.mark.parametrize("role, pages", [
    ("owner", ["dashboard", "staff", "menu", "orders", "settings"]),
    ("manager", ["dashboard", "staff", "menu", "orders", "settings"]),
    ("cashier", ["dashboard", "orders"]),
    ("chef", ["dashboard", "menu"]),
    ("inventory_handler", ["dashboard"]),
    (None, []),
])
def test_allowed_pages(role, pages):
    assert allowed_pages(role) == pages


def _preloaded(ctx):
    # touch the attributes the checks read so no refresh query is counted
    ctx.profile.role, ctx.profile.canteen_id, ctx.profile.is_active, ctx.profile.id
    ctx.identity.id
    return ctx


def test_cashier_is_rejected_from_staff_before_any_query(make, sql_log):
    owner = make.owner()
    cashier = _preloaded(make.member("cashier@example.com", Role.CASHIER.value, owner.canteen_id))
    sql_log.clear()

    with pytest.raises(PermissionDenied):
        staff.list_staff(cashier)
    with pytest.raises(PermissionDenied):
        invitations.create_invitation(cashier, "someone@example.com", "chef")
    assert sql_log == []


def test_chef_cannot_take_orders(make):
    owner = make.owner()
    chef = make.member("chef@example.com", Role.CHEF.value, owner.canteen_id)
    with pytest.raises(PermissionDenied):
        check_access(chef, "orders")
    check_access(chef, "menu")


def test_inactive_member_is_rejected_everywhere(make):
    owner = make.owner()
    manager = make.member("manager@example.com", Role.MANAGER.value, owner.canteen_id, is_active=False)
    for page in ("dashboard", "staff", "orders"):
        with pytest.raises(PermissionDenied, match="deactivated"):
            check_access(manager, page)


def test_unprovisioned_owner_needs_a_canteen(make):
    identity = make.identity("new@example.com")
    ctx = SessionContext(identity=identity, profile=profiles.resolve(identity))
    check_access(ctx, "dashboard", needs_canteen=False)
    with pytest.raises(PermissionDenied, match="canteen"):
        check_access(ctx, "orders")


def test_missing_profile_is_rejected(make):
    ctx = SessionContext(identity=make.identity("ghost@example.com"), profile=None)
    with pytest.raises(PermissionDenied):
        check_access(ctx, "dashboard", needs_canteen=False)


def test_owner_only_actions(make):
    owner = make.owner()
    manager = make.member("manager@example.com", Role.MANAGER.value, owner.canteen_id)
    for action in ("canteen.create", "canteen.delete", "canteen.seed", "staff.assign_owner"):
        check_action(owner, action)
        with pytest.raises(PermissionDenied):
            check_action(manager, action)
