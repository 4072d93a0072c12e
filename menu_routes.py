from flask import Blueprint, jsonify, request

import menu
from permissions import page_required
from utils.forms import bool_value, request_data

menu_bp = Blueprint("menu", __name__)

ITEM_FIELDS = ("name", "category_id", "price", "description", "preparation_time",
               "is_active", "is_available", "image_url")


@menu_bp.route("/categories")
@page_required("menu")
def categories(ctx):
    return jsonify({"categories": [c.to_dict() for c in menu.list_categories(ctx)]})


@menu_bp.route("/categories", methods=["POST"])
@page_required("menu")
def create_category(ctx):
    data = request_data()
    cat = menu.create_category(ctx, data.get("name"), data.get("description"), data.get("is_active", True))
    return jsonify(cat.to_dict()), 201


@menu_bp.route("/categories/<int:category_id>", methods=["PATCH"])
@page_required("menu")
def update_category(ctx, category_id):
    data = request_data()
    fields = {k: data[k] for k in ("name", "description", "is_active") if k in data}
    return jsonify(menu.update_category(ctx, category_id, **fields).to_dict())


@menu_bp.route("/categories/<int:category_id>", methods=["DELETE"])
@page_required("menu")
def delete_category(ctx, category_id):
    menu.delete_category(ctx, category_id)
    return jsonify({"message": "Category deleted successfully"})


@menu_bp.route("/items")
@page_required("menu")
def items(ctx):
    rows = menu.list_menu_items(
        ctx,
        category_id=request.args.get("category_id"),
        search=request.args.get("search"),
    )
    return jsonify({"menu_items": [it.to_dict(with_category=True) for it in rows]})


@menu_bp.route("/items", methods=["POST"])
@page_required("menu")
def create_item(ctx):
    data = request_data()
    fields = {k: data[k] for k in ITEM_FIELDS if k in data}
    item = menu.create_menu_item(
        ctx,
        fields.pop("name", None),
        fields.pop("category_id", None),
        fields.pop("price", None),
        **fields,
    )
    return jsonify(item.to_dict(with_category=True)), 201


@menu_bp.route("/items/<int:item_id>", methods=["PATCH"])
@page_required("menu")
def update_item(ctx, item_id):
    data = request_data()
    fields = {k: data[k] for k in ITEM_FIELDS if k in data}
    item = menu.update_menu_item(ctx, item_id, **fields)
    return jsonify(item.to_dict(with_category=True))


@menu_bp.route("/items/<int:item_id>/availability", methods=["POST"])
@page_required("menu")
def availability(ctx, item_id):
    data = request_data()
    item = menu.set_availability(ctx, item_id, bool_value(data.get("is_available")))
    return jsonify(item.to_dict(with_category=True))


@menu_bp.route("/items/<int:item_id>", methods=["DELETE"])
@page_required("menu")
def delete_item(ctx, item_id):
    menu.delete_menu_item(ctx, item_id)
    return jsonify({"message": "Menu item deleted successfully"})
