"""
Order workflow: creation with price snapshots, and the status state machine

    pending -> preparing -> ready -> completed
       \\__________\\__________\\-> cancelled
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from errors import IllegalTransition, NotFound, PartialFailure, PermissionDenied, ValidationError
from models import db, MenuItem, Order, OrderItem, OrderStatus, OrderType, PaymentMethod

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING.value: {OrderStatus.PREPARING.value, OrderStatus.CANCELLED.value},
    OrderStatus.PREPARING.value: {OrderStatus.READY.value, OrderStatus.CANCELLED.value},
    OrderStatus.READY.value: {OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value},
    OrderStatus.COMPLETED.value: set(),
    OrderStatus.CANCELLED.value: set(),
}

ACTIVE_STATUSES = (OrderStatus.PENDING.value, OrderStatus.PREPARING.value, OrderStatus.READY.value)


@dataclass
class LineRequest:
    menu_item_id: int
    quantity: int = 1
    special_instructions: Optional[str] = None

    @classmethod
    def from_dict(cls, raw):
        try:
            menu_item_id = int(raw["menu_item_id"])
            quantity = int(raw.get("quantity", 1))
        except (KeyError, TypeError, ValueError):
            raise ValidationError("Each item needs a menu_item_id and an integer quantity")
        return cls(menu_item_id, quantity, raw.get("special_instructions") or None)


def _coerce_lines(line_requests):
    lines = [l if isinstance(l, LineRequest) else LineRequest.from_dict(l) for l in line_requests or []]
    for line in lines:
        if line.quantity < 1:
            raise ValidationError("Quantity must be at least 1")
    return lines


def can_transition(current, target):
    return target in ALLOWED_TRANSITIONS.get(current, set())


def compute_order_total(line_requests, price_lookup):
    """Sum of quantity x unit price.

    Lines whose menu item is missing from ``price_lookup`` add nothing, so
    callers must drop or reject unknown items before trusting the result.
    """
    total = Decimal("0")
    for line in _coerce_lines(line_requests):
        price = price_lookup.get(line.menu_item_id)
        if price is None:
            continue
        total += Decimal(price) * line.quantity
    return total.quantize(CENTS)


def _choice(value, enum_cls, label):
    try:
        return enum_cls(value).value
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"Invalid {label} '{value}' (expected one of: {allowed})")


def _scoped_order(ctx, order_id):
    order = db.session.get(Order, order_id)
    if order is None or order.canteen_id != ctx.canteen_id:
        raise NotFound(f"Order {order_id} not found")
    return order


def create_order(ctx, canteen_id, customer_info, order_type, payment_method, line_requests, notes=None):
    if canteen_id != ctx.canteen_id:
        raise PermissionDenied("Orders can only be created for your own canteen")
    order_type = _choice(order_type or OrderType.DINE_IN.value, OrderType, "order type")
    payment_method = _choice(payment_method or PaymentMethod.CASH.value, PaymentMethod, "payment method")
    lines = _coerce_lines(line_requests)
    if not lines:
        raise ValidationError("An order needs at least one item")

    ids = {line.menu_item_id for line in lines}
    menu = {
        item.id: item
        for item in MenuItem.query.filter(MenuItem.id.in_(ids), MenuItem.canteen_id == canteen_id).all()
    }
    for line in lines:
        item = menu.get(line.menu_item_id)
        if item is None:
            raise ValidationError(f"Menu item {line.menu_item_id} is not on this canteen's menu")
        if not (item.is_active and item.is_available):
            raise ValidationError(f"{item.name} is not available")

    prices = {item_id: Decimal(item.price) for item_id, item in menu.items()}
    customer_info = customer_info or {}
    order = Order(
        canteen_id=canteen_id,
        customer_name=(customer_info.get("customer_name") or "").strip() or None,
        customer_phone=(customer_info.get("customer_phone") or "").strip() or None,
        order_type=order_type,
        payment_method=payment_method,
        status=OrderStatus.PENDING.value,
        total_amount=compute_order_total(lines, prices),
        notes=(notes or "").strip() or None,
    )
    db.session.add(order)
    db.session.commit()

    try:
        db.session.add_all([
            OrderItem(
                order_id=order.id,
                menu_item_id=line.menu_item_id,
                quantity=line.quantity,
                unit_price=prices[line.menu_item_id],
                total_price=(prices[line.menu_item_id] * line.quantity).quantize(CENTS),
                special_instructions=line.special_instructions,
            )
            for line in lines
        ])
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("items for order %s failed to persist", order.id)
        _withdraw(order.id)
        raise PartialFailure("The order items could not be saved, so the order was withdrawn")

    logger.info("order %s created for canteen %s (total %s)", order.id, canteen_id, order.total_amount)
    return order


def _withdraw(order_id):
    """Compensate a half-written order by deleting the order row."""
    try:
        order = db.session.get(Order, order_id)
        if order is not None:
            db.session.delete(order)
            db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.error("order %s was saved without items and could not be withdrawn; reconcile manually", order_id)
        raise PartialFailure(f"Order {order_id} was saved without its items; please contact a manager")


def advance_status(ctx, order_id, target_status):
    target = _choice(target_status, OrderStatus, "status")
    order = _scoped_order(ctx, order_id)
    if not can_transition(order.status, target):
        raise IllegalTransition(f"Cannot move order {order.id} from {order.status} to {target}")

    previous = order.status
    order.status = target
    if target == OrderStatus.COMPLETED.value:
        order.served_by = ctx.user_id
    db.session.commit()
    logger.info("order %s: %s -> %s by %s", order.id, previous, target, ctx.user_id)
    return order


def get_order(ctx, order_id):
    return _scoped_order(ctx, order_id)


def list_orders(ctx, status=None, search=None, limit=None):
    query = (
        Order.query.filter_by(canteen_id=ctx.canteen_id)
        .options(selectinload(Order.items).selectinload(OrderItem.menu_item))
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    if status and status != "all":
        query = query.filter(Order.status == _choice(status, OrderStatus, "status"))
    if search:
        term = f"%{search.strip()}%"
        conditions = [Order.customer_name.ilike(term), Order.customer_phone.ilike(term)]
        if search.strip().isdigit():
            conditions.append(Order.id == int(search.strip()))
        query = query.filter(or_(*conditions))
    if limit:
        query = query.limit(limit)
    return query.all()


def active_orders(ctx):
    return [o for o in list_orders(ctx) if o.status in ACTIVE_STATUSES]


