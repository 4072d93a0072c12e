import secrets

from flask import Blueprint, jsonify, redirect, request, session, url_for
from flask_login import login_required

import auth
import invitations
import profiles
from errors import AuthenticationError
from permissions import allowed_pages
from utils.forms import request_data

auth_bp = Blueprint("auth", __name__)


def _session_payload(ctx):
    if ctx is None:
        return {"user": None, "profile": None, "pages": []}
    data = ctx.to_dict()
    data["pages"] = allowed_pages(ctx.role) if ctx.profile and ctx.profile.is_active else []
    data["needs_setup"] = bool(ctx.profile and ctx.profile.is_unprovisioned)
    return data


@auth_bp.route("/sign-in", methods=["POST"])
def sign_in():
    data = request_data()
    ctx = auth.sign_in_with_password(data.get("email"), data.get("password"))
    return jsonify(_session_payload(ctx))


@auth_bp.route("/sign-up", methods=["POST"])
def sign_up():
    data = request_data()
    identity = auth.sign_up(
        data.get("email"),
        data.get("password"),
        {"full_name": (data.get("full_name") or "").strip() or None},
    )
    ctx = auth.start_session(identity)
    return jsonify(_session_payload(ctx)), 201


@auth_bp.route("/sign-out", methods=["POST"])
def sign_out():
    auth.sign_out()
    return jsonify({"message": "You have been successfully signed out."})


@auth_bp.route("/session")
def current_session():
    return jsonify(_session_payload(auth.get_current_session()))


@auth_bp.route("/profile", methods=["PATCH"])
@login_required
def update_profile():
    data = request_data()
    ctx = auth.require_session()
    profile = profiles.update_own_profile(
        ctx,
        full_name=data.get("full_name"),
        phone=data.get("phone"),
        avatar_url=data.get("avatar_url"),
    )
    return jsonify(profile.to_dict())


# ---- OAuth ----

@auth_bp.route("/oauth/<provider>")
def oauth_start(provider):
    state = secrets.token_urlsafe(16)
    session["oauth_state"] = state
    redirect_uri = url_for("auth.oauth_callback", provider=provider, _external=True)
    return redirect(auth.oauth_authorize_url(provider, state, redirect_uri))


@auth_bp.route("/oauth/<provider>/callback")
def oauth_callback(provider):
    expected = session.pop("oauth_state", None)
    if not expected or request.args.get("state") != expected:
        raise AuthenticationError("Sign in request expired, please try again")
    if request.args.get("error"):
        raise AuthenticationError(f"Sign in with {provider} failed: {request.args['error']}")
    redirect_uri = url_for("auth.oauth_callback", provider=provider, _external=True)
    auth.complete_oauth_sign_in(provider, request.args.get("code"), redirect_uri)
    return redirect(url_for("dashboard.index"))


# ---- Invitations ----

@auth_bp.route("/invitations/<token>")
def invitation_details(token):
    details = invitations.fetch_invitation(token)
    return jsonify({
        "email": details["email"],
        "role": details["role"],
        "canteen_id": details["canteen_id"],
        "canteen_name": details["canteen_name"],
        "status": details["status"],
        "expires_at": details["expires_at"].isoformat(),
    })


@auth_bp.route("/invitations/<token>/accept", methods=["POST"])
def accept_invitation(token):
    data = request_data()
    result = invitations.accept_invitation(token, data.get("full_name"), data.get("password"))
    payload = result.to_dict()
    payload["message"] = "You have successfully joined the canteen."
    return jsonify(payload), 201
