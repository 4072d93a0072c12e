import logging

from sqlalchemy.exc import SQLAlchemyError

from errors import ProfileResolutionError, ValidationError
from models import db, Profile, Role

logger = logging.getLogger(__name__)

DEFAULT_FULL_NAME = "New User"


def resolve(identity):
    """Return the identity's profile, creating an unprovisioned owner profile on first sign-in.

    An existing profile is returned untouched. Otherwise exactly one row is
    inserted; ``profiles.user_id`` is unique so a concurrent duplicate insert
    fails instead of creating a second profile. Any failure raises
    ``ProfileResolutionError`` and the caller must treat the user as having
    no profile.
    """
    if identity is None or not getattr(identity, "id", None):
        raise ProfileResolutionError("Not signed in")

    try:
        profile = Profile.query.filter_by(user_id=identity.id).one_or_none()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("profile lookup failed for identity %s", identity.id)
        raise ProfileResolutionError()
    if profile is not None:
        return profile

    metadata = identity.user_metadata or {}
    profile = Profile(
        user_id=identity.id,
        email=identity.email or "",
        full_name=metadata.get("full_name") or DEFAULT_FULL_NAME,
        role=Role.OWNER.value,
    )
    db.session.add(profile)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("profile creation failed for identity %s", identity.id)
        raise ProfileResolutionError()
    logger.info("created owner profile %s for identity %s", profile.id, identity.id)
    return profile


def update_own_profile(ctx, full_name=None, phone=None, avatar_url=None):
    """Settings page: a user edits their own contact fields. Role is not editable here."""
    profile = ctx.profile
    if profile is None:
        raise ProfileResolutionError()
    if full_name is not None:
        if not full_name.strip():
            raise ValidationError("Full name is required")
        profile.full_name = full_name.strip()
    if phone is not None:
        profile.phone = phone.strip() or None
    if avatar_url is not None:
        profile.avatar_url = avatar_url.strip() or None
    db.session.commit()
    return profile
