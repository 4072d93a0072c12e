from flask import Blueprint, jsonify

import canteens
from permissions import page_required
from utils.forms import request_data

settings_bp = Blueprint("settings", __name__)


@settings_bp.route("/canteen")
@page_required("settings")
def canteen(ctx):
    return jsonify(canteens.get_canteen(ctx).to_dict())


@settings_bp.route("/canteen", methods=["POST"])
@page_required("settings", needs_canteen=False)
def create_canteen(ctx):
    data = request_data()
    created = canteens.create_canteen(
        ctx,
        data.get("name"),
        description=data.get("description"),
        address=data.get("address"),
        phone=data.get("phone"),
        email=data.get("email"),
    )
    return jsonify({"message": "Canteen created successfully", "canteen": created.to_dict()}), 201


@settings_bp.route("/canteen", methods=["PATCH"])
@page_required("settings")
def update_canteen(ctx):
    data = request_data()
    fields = {k: data[k] for k in canteens.EDITABLE_FIELDS if k in data}
    updated = canteens.update_canteen(ctx, **fields)
    return jsonify({"message": "Canteen settings updated successfully", "canteen": updated.to_dict()})


@settings_bp.route("/canteen", methods=["DELETE"])
@page_required("settings")
def delete_canteen(ctx):
    canteens.delete_canteen(ctx)
    return jsonify({"message": "Canteen deleted successfully"})
