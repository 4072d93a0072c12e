"""
Invitation workflow: a one-time token lets a given email join a canteen with a
pre-assigned role.

Acceptance runs as separate commits: validate, create identity, create
profile, mark accepted. If the last step fails the new member keeps their
account and the invitation stays pending until someone reconciles it; a
second attempt with the same token still fails because the email is taken.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

import auth
import store
from errors import InvitationError, NotFound, PartialFailure, ValidationError
from models import db, Identity, Invitation, InvitationStatus, Profile, Role, utcnow
from permissions import check_access, check_action

logger = logging.getLogger(__name__)


@dataclass
class AcceptResult:
    identity: Identity
    profile: Profile
    bookkeeping_pending: bool = False

    def to_dict(self):
        return {
            "user": self.identity.to_dict(),
            "profile": self.profile.to_dict(),
            "bookkeeping_pending": self.bookkeeping_pending,
        }


def fetch_invitation(token):
    if not token:
        raise InvitationError("Invitation token is missing or invalid.")
    try:
        rows = store.get_invitation_details_by_token(token)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("invitation lookup failed")
        raise InvitationError("Invitation not found or expired.")
    if not rows:
        raise InvitationError("Invitation not found or expired.")

    details = rows[0]
    if details["status"] != InvitationStatus.PENDING.value:
        raise InvitationError(f"This invitation has already been {details['status']}.")
    if utcnow() >= details["expires_at"]:
        raise InvitationError("This invitation has expired.")
    return details


def accept_invitation(token, full_name, password):
    full_name = (full_name or "").strip()
    if not full_name or not password:
        raise ValidationError("Full name and password are required")

    details = fetch_invitation(token)

    identity = auth.sign_up(details["email"], password, {"full_name": full_name, "role": details["role"]})

    profile = Profile(
        user_id=identity.id,
        email=identity.email,
        full_name=full_name,
        role=details["role"],
        canteen_id=details["canteen_id"],
    )
    db.session.add(profile)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("identity %s created but profile for invitation %s failed", identity.id, details["id"])
        raise PartialFailure("Your account was created but joining the canteen failed; contact the canteen owner")

    bookkeeping_pending = False
    try:
        store.mark_invitation_accepted(token)
    except SQLAlchemyError:
        db.session.rollback()
        bookkeeping_pending = True
        logger.error("invitation %s could not be marked accepted for identity %s; reconcile manually",
                     details["id"], identity.id)

    logger.info("identity %s joined canteen %s as %s", identity.id, details["canteen_id"], details["role"])
    return AcceptResult(identity=identity, profile=profile, bookkeeping_pending=bookkeeping_pending)


# ---- Staff management side ----

def create_invitation(ctx, email, role, ttl_days=None):
    check_access(ctx, "staff")
    try:
        role = Role(role).value
    except ValueError:
        raise ValidationError(f"Invalid role '{role}'")
    if role == Role.OWNER.value:
        check_action(ctx, "staff.assign_owner")

    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    if Identity.query.filter_by(email=email).first():
        raise ValidationError(f"{email} already has an account")
    existing = Invitation.query.filter_by(
        email=email, canteen_id=ctx.canteen_id, status=InvitationStatus.PENDING.value
    ).filter(Invitation.expires_at > utcnow()).first()
    if existing:
        raise ValidationError(f"{email} already has a pending invitation")

    ttl = ttl_days if ttl_days is not None else current_app.config["INVITATION_TTL_DAYS"]
    invitation = Invitation(
        token=secrets.token_urlsafe(32),
        email=email,
        role=role,
        canteen_id=ctx.canteen_id,
        invited_by=ctx.user_id,
        status=InvitationStatus.PENDING.value,
        expires_at=utcnow() + timedelta(days=ttl),
    )
    db.session.add(invitation)
    db.session.commit()
    logger.info("invitation %s created for %s as %s in canteen %s", invitation.id, email, role, ctx.canteen_id)
    return invitation


def list_invitations(ctx, status=None):
    check_access(ctx, "staff")
    query = Invitation.query.filter_by(canteen_id=ctx.canteen_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(Invitation.created_at.desc()).all()


def get_invitation(ctx, invitation_id):
    check_access(ctx, "staff")
    invitation = db.session.get(Invitation, invitation_id)
    if invitation is None or invitation.canteen_id != ctx.canteen_id:
        raise NotFound(f"Invitation {invitation_id} not found")
    return invitation


def revoke_invitation(ctx, invitation_id):
    invitation = get_invitation(ctx, invitation_id)
    if invitation.status != InvitationStatus.PENDING.value:
        raise ValidationError(f"This invitation has already been {invitation.status}.")
    invitation.status = InvitationStatus.EXPIRED.value
    db.session.commit()
    return invitation


def invitation_link(invitation):
    base = current_app.config["PUBLIC_BASE_URL"].rstrip("/")
    return f"{base}/auth/accept-invitation?token={invitation.token}"
