"""
Identity provider and session context.

Identities are local rows with werkzeug password hashes; the browser session is
held by Flask-Login. Each request gets one ``SessionContext`` (identity +
resolved profile) that is passed explicitly into the workflow functions.
"""
import json
import logging
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Optional

from flask import current_app, g
from flask_login import current_user, login_user, logout_user
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from errors import AuthenticationError, ProfileResolutionError, ValidationError
from models import db, Identity, Profile, utcnow
import profiles

logger = logging.getLogger(__name__)

_session_listeners = []


@dataclass
class SessionContext:
    identity: Identity
    profile: Optional[Profile]

    @property
    def user_id(self):
        return self.identity.id

    @property
    def role(self):
        return self.profile.role if self.profile else None

    @property
    def canteen_id(self):
        return self.profile.canteen_id if self.profile else None

    def to_dict(self):
        return {
            "user": self.identity.to_dict(),
            "profile": self.profile.to_dict() if self.profile else None,
        }


def on_session_change(callback):
    """Register ``callback(ctx_or_None)``; returns a function that unregisters it."""
    _session_listeners.append(callback)

    def unsubscribe():
        if callback in _session_listeners:
            _session_listeners.remove(callback)
    return unsubscribe


def _notify(ctx):
    for cb in list(_session_listeners):
        try:
            cb(ctx)
        except Exception:
            logger.exception("session change listener failed")


def _normalize_email(email):
    return (email or "").strip().lower()


def _build_context(identity):
    try:
        profile = profiles.resolve(identity)
    except ProfileResolutionError:
        logger.error("no usable profile for identity %s", identity.id)
        profile = None
    return SessionContext(identity=identity, profile=profile)


def start_session(identity):
    login_user(identity)
    ctx = _build_context(identity)
    g.session_context = ctx
    _notify(ctx)
    return ctx


# ---- Password accounts ----

def sign_up(email, password, metadata=None):
    email = _normalize_email(email)
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    if not password or len(password) < current_app.config["MIN_PASSWORD_LENGTH"]:
        raise ValidationError(
            f"Password must be at least {current_app.config['MIN_PASSWORD_LENGTH']} characters"
        )
    if Identity.query.filter_by(email=email).first():
        raise ValidationError("User already registered")

    identity = Identity(
        email=email,
        password_hash=generate_password_hash(password),
        provider="email",
        user_metadata=dict(metadata or {}),
        email_confirmed_at=utcnow(),
    )
    db.session.add(identity)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("User already registered")
    logger.info("identity %s signed up", identity.id)
    return identity


def sign_in_with_password(email, password):
    identity = Identity.query.filter_by(email=_normalize_email(email)).first()
    if identity is None or not identity.password_hash or not check_password_hash(identity.password_hash, password or ""):
        raise AuthenticationError("Invalid login credentials")
    identity.last_sign_in_at = utcnow()
    db.session.commit()
    return start_session(identity)


def sign_out():
    g.pop("session_context", None)
    logout_user()
    _notify(None)


def get_current_user():
    if current_user.is_authenticated:
        return current_user._get_current_object()
    return None


def get_current_session():
    if "session_context" in g:
        return g.session_context
    identity = get_current_user()
    if identity is None:
        return None
    g.session_context = _build_context(identity)
    return g.session_context


def require_session():
    ctx = get_current_session()
    if ctx is None:
        raise AuthenticationError("Not signed in")
    return ctx


# ---- OAuth (authorization code) ----

def _oauth_settings(provider):
    key = provider.upper()
    cfg = current_app.config
    client_id = cfg.get(f"OAUTH_{key}_CLIENT_ID")
    if not client_id:
        raise AuthenticationError(f"Sign in with {provider} is not configured")
    return {
        "client_id": client_id,
        "client_secret": cfg.get(f"OAUTH_{key}_CLIENT_SECRET", ""),
        "authorize_url": cfg[f"OAUTH_{key}_AUTHORIZE_URL"],
        "token_url": cfg[f"OAUTH_{key}_TOKEN_URL"],
        "userinfo_url": cfg[f"OAUTH_{key}_USERINFO_URL"],
    }


def oauth_authorize_url(provider, state, redirect_uri):
    settings = _oauth_settings(provider)
    query = urllib.parse.urlencode({
        "client_id": settings["client_id"],
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": "openid email profile",
        "state": state,
    })
    return f"{settings['authorize_url']}?{query}"


def _http_json(url, data=None, headers=None):
    body = urllib.parse.urlencode(data).encode() if data is not None else None
    req = urllib.request.Request(url, data=body, headers=headers or {})
    with urllib.request.urlopen(req, timeout=10) as resp:
        return json.loads(resp.read().decode("utf-8"))


def exchange_code(settings, code, redirect_uri):
    return _http_json(settings["token_url"], data={
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "client_id": settings["client_id"],
        "client_secret": settings["client_secret"],
    })


def fetch_userinfo(settings, access_token):
    return _http_json(settings["userinfo_url"], headers={"Authorization": f"Bearer {access_token}"})


def complete_oauth_sign_in(provider, code, redirect_uri):
    settings = _oauth_settings(provider)
    try:
        token = exchange_code(settings, code, redirect_uri)
        info = fetch_userinfo(settings, token["access_token"])
    except (OSError, ValueError, KeyError) as e:
        logger.error("oauth exchange with %s failed: %s", provider, e)
        raise AuthenticationError(f"Sign in with {provider} failed")

    email = _normalize_email(info.get("email"))
    if not email:
        raise AuthenticationError(f"{provider} did not return an email address")
    # only provider-verified addresses may sign in or link to an existing identity
    if info.get("email_verified") is not True:
        raise AuthenticationError(f"Email not confirmed with {provider}")

    identity = Identity.query.filter_by(email=email).first()
    if identity is None:
        identity = Identity(
            email=email,
            provider=provider,
            user_metadata={"full_name": info.get("name")} if info.get("name") else {},
            email_confirmed_at=utcnow(),
        )
        db.session.add(identity)
    identity.last_sign_in_at = utcnow()
    db.session.commit()
    return start_session(identity)
