import json
import queue

from flask import Blueprint, Response, jsonify, request

import menu
import orders
from permissions import page_required
from store import feed
from utils.forms import int_arg, request_data

order_bp = Blueprint("orders", __name__)

STREAM_KEEPALIVE_SEC = 15


@order_bp.route("/")
@page_required("orders")
def list_orders(ctx):
    rows = orders.list_orders(
        ctx,
        status=request.args.get("status"),
        search=request.args.get("search"),
        limit=int_arg("limit"),
    )
    return jsonify({"orders": [o.to_dict() for o in rows]})


@order_bp.route("/active")
@page_required("orders")
def active(ctx):
    return jsonify({"orders": [o.to_dict() for o in orders.active_orders(ctx)]})


@order_bp.route("/menu-items")
@page_required("orders")
def orderable_items(ctx):
    items = menu.list_menu_items(ctx, orderable_only=True)
    return jsonify({"menu_items": [it.to_dict(with_category=True) for it in items]})


@order_bp.route("/", methods=["POST"])
@page_required("orders")
def create(ctx):
    data = request_data()
    order = orders.create_order(
        ctx,
        ctx.canteen_id,
        {"customer_name": data.get("customer_name"), "customer_phone": data.get("customer_phone")},
        data.get("order_type"),
        data.get("payment_method"),
        data.get("items") or [],
        notes=data.get("notes"),
    )
    return jsonify(order.to_dict()), 201


@order_bp.route("/<int:order_id>")
@page_required("orders")
def detail(ctx, order_id):
    return jsonify(orders.get_order(ctx, order_id).to_dict())


@order_bp.route("/<int:order_id>/status", methods=["POST"])
@page_required("orders")
def update_status(ctx, order_id):
    data = request_data()
    order = orders.advance_status(ctx, order_id, data.get("status"))
    return jsonify({"message": f"Order status updated to {order.status}", "order": order.to_dict()})


@order_bp.route("/stream")
@page_required("orders")
def stream(ctx):
    """Server-sent events: one ``change`` event whenever this canteen's orders change."""
    canteen_id = ctx.canteen_id

    def events():
        changes = queue.Queue()
        sub = feed.subscribe("orders", canteen_id, changes.put)
        try:
            yield "retry: 3000\n\n"
            while True:
                try:
                    change = changes.get(timeout=STREAM_KEEPALIVE_SEC)
                except queue.Empty:
                    yield ": keep-alive\n\n"
                    continue
                payload = json.dumps({"table": change.table, "canteen_id": change.canteen_id})
                yield f"event: change\ndata: {payload}\n\n"
        finally:
            sub.unsubscribe()

    return Response(events(), mimetype="text/event-stream", headers={"Cache-Control": "no-cache"})
