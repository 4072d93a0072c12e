import logging

from sqlalchemy import or_

from errors import NotFound, ValidationError
from models import db, Profile, Role
from permissions import check_access, check_action

logger = logging.getLogger(__name__)


def _member(ctx, profile_id):
    member = db.session.get(Profile, profile_id)
    if member is None or member.canteen_id != ctx.canteen_id:
        raise NotFound(f"Staff member {profile_id} not found")
    return member


def list_staff(ctx, search=None, role=None):
    check_access(ctx, "staff")
    query = Profile.query.filter_by(canteen_id=ctx.canteen_id).order_by(Profile.created_at.desc())
    if role and role != "all":
        query = query.filter_by(role=role)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(Profile.full_name.ilike(term), Profile.email.ilike(term)))
    return query.all()


def update_staff(ctx, profile_id, role=None, full_name=None, phone=None):
    check_access(ctx, "staff")
    member = _member(ctx, profile_id)
    if member.role == Role.OWNER.value:
        check_action(ctx, "staff.edit_owner")

    if role is not None and role != member.role:
        try:
            role = Role(role).value
        except ValueError:
            raise ValidationError(f"Invalid role '{role}'")
        if role == Role.OWNER.value:
            check_action(ctx, "staff.assign_owner")
        if member.id == ctx.profile.id:
            raise ValidationError("You cannot change your own role")
        logger.info("profile %s role %s -> %s by %s", member.id, member.role, role, ctx.user_id)
        member.role = role
    if full_name is not None:
        if not full_name.strip():
            raise ValidationError("Full name is required")
        member.full_name = full_name.strip()
    if phone is not None:
        member.phone = phone.strip() or None
    db.session.commit()
    return member


def toggle_active(ctx, profile_id):
    check_access(ctx, "staff")
    member = _member(ctx, profile_id)
    if member.id == ctx.profile.id:
        raise ValidationError("You cannot deactivate yourself")
    if member.role == Role.OWNER.value:
        check_action(ctx, "staff.edit_owner")
    member.is_active = not member.is_active
    db.session.commit()
    logger.info("profile %s is_active=%s by %s", member.id, member.is_active, ctx.user_id)
    return member
