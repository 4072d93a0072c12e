"""
Static role allow-lists for pages and the few actions that are narrower than
their page. Checks run against the session context only, before any query.
"""
from functools import wraps

from auth import require_session
from errors import PermissionDenied
from models import Role

ALL_ROLES = tuple(r.value for r in Role)

PAGE_ROLES = {
    "dashboard": ALL_ROLES,
    "staff": (Role.OWNER.value, Role.MANAGER.value),
    "menu": (Role.OWNER.value, Role.MANAGER.value, Role.CHEF.value),
    "orders": (Role.OWNER.value, Role.MANAGER.value, Role.CASHIER.value),
    "settings": (Role.OWNER.value, Role.MANAGER.value),
}

ACTION_ROLES = {
    "canteen.create": (Role.OWNER.value,),
    "canteen.delete": (Role.OWNER.value,),
    "canteen.seed": (Role.OWNER.value,),
    "staff.assign_owner": (Role.OWNER.value,),
    "staff.edit_owner": (Role.OWNER.value,),
}


def allowed_pages(role):
    return [page for page, roles in PAGE_ROLES.items() if role in roles]


def check_access(ctx, page, needs_canteen=True):
    profile = ctx.profile if ctx else None
    if profile is None:
        raise PermissionDenied("No usable profile for this account")
    if not profile.is_active:
        raise PermissionDenied("Your account has been deactivated")
    if profile.role not in PAGE_ROLES[page]:
        raise PermissionDenied(f"Your role ({profile.role}) cannot access {page}")
    if needs_canteen and profile.canteen_id is None:
        raise PermissionDenied("Create or join a canteen first")


def check_action(ctx, action):
    role = ctx.role if ctx else None
    if role not in ACTION_ROLES[action]:
        raise PermissionDenied(f"Your role ({role}) cannot perform {action}")


def page_required(page, needs_canteen=True):
    """Route decorator: resolve the session, check the page allow-list, pass ``ctx`` first."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            ctx = require_session()
            check_access(ctx, page, needs_canteen=needs_canteen)
            return fn(ctx, *args, **kwargs)
        return wrapper
    return decorator
