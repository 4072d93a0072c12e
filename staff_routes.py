from flask import Blueprint, jsonify, request

import invitations
import staff
from permissions import page_required
from utils.forms import request_data
from utils.qr import as_data_uri, build_link_qr_png

staff_bp = Blueprint("staff", __name__)


@staff_bp.route("/")
@page_required("staff")
def list_staff(ctx):
    members = staff.list_staff(ctx, search=request.args.get("search"), role=request.args.get("role"))
    return jsonify({"staff": [m.to_dict() for m in members]})


@staff_bp.route("/<int:profile_id>", methods=["PATCH"])
@page_required("staff")
def update_member(ctx, profile_id):
    data = request_data()
    member = staff.update_staff(
        ctx, profile_id,
        role=data.get("role"),
        full_name=data.get("full_name"),
        phone=data.get("phone"),
    )
    return jsonify({"message": "Staff member updated successfully", "member": member.to_dict()})


@staff_bp.route("/<int:profile_id>/toggle-active", methods=["POST"])
@page_required("staff")
def toggle_member(ctx, profile_id):
    member = staff.toggle_active(ctx, profile_id)
    return jsonify(member.to_dict())


@staff_bp.route("/invitations")
@page_required("staff")
def list_invitations(ctx):
    rows = invitations.list_invitations(ctx, status=request.args.get("status"))
    return jsonify({"invitations": [i.to_dict() for i in rows]})


@staff_bp.route("/invitations", methods=["POST"])
@page_required("staff")
def invite(ctx):
    data = request_data()
    inv = invitations.create_invitation(ctx, data.get("email"), data.get("role") or "cashier")
    payload = inv.to_dict()
    payload["link"] = invitations.invitation_link(inv)
    return jsonify(payload), 201


@staff_bp.route("/invitations/<int:invitation_id>/revoke", methods=["POST"])
@page_required("staff")
def revoke(ctx, invitation_id):
    return jsonify(invitations.revoke_invitation(ctx, invitation_id).to_dict())


@staff_bp.route("/invitations/<int:invitation_id>/qr")
@page_required("staff")
def invitation_qr(ctx, invitation_id):
    inv = invitations.get_invitation(ctx, invitation_id)
    link = invitations.invitation_link(inv)
    return jsonify({"link": link, "qr_png": as_data_uri(build_link_qr_png(link))})
