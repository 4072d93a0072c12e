from flask import Blueprint, jsonify

import canteens
import dashboard
from permissions import page_required

dashboard_bp = Blueprint("dashboard", __name__)


@dashboard_bp.route("/")
@page_required("dashboard", needs_canteen=False)
def index(ctx):
    # brand-new owners land here before they have a canteen
    if ctx.profile.is_unprovisioned:
        return jsonify({"needs_setup": True, "profile": ctx.profile.to_dict()})
    if ctx.canteen_id is None:
        return jsonify({"needs_setup": False, "profile": ctx.profile.to_dict(), "stats": None})
    data = dashboard.dashboard_data(ctx)
    data["profile"] = ctx.profile.to_dict()
    data["needs_setup"] = False
    return jsonify(data)


@dashboard_bp.route("/seed", methods=["POST"])
@page_required("dashboard", needs_canteen=False)
def seed(ctx):
    canteen = canteens.seed_sample_canteen(ctx)
    return jsonify({"message": "Your sample canteen has been created.", "canteen": canteen.to_dict()}), 201
