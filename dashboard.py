from decimal import Decimal

from sqlalchemy.orm import selectinload

from models import MenuItem, Order, OrderItem, OrderStatus, utcnow
import orders as order_workflow


def _month_start(moment):
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _previous_month_start(month_start):
    if month_start.month == 1:
        return month_start.replace(year=month_start.year - 1, month=12)
    return month_start.replace(month=month_start.month - 1)


def _growth(current, previous):
    if not previous:
        return 100.0 if current else 0.0
    return round(float((Decimal(current) - Decimal(previous)) / Decimal(previous) * 100), 1)


def dashboard_stats(ctx, now=None):
    """Month-to-date figures for the canteen, with growth against the previous month."""
    now = now or utcnow()
    this_month = _month_start(now)
    last_month = _previous_month_start(this_month)

    orders = Order.query.filter(Order.canteen_id == ctx.canteen_id, Order.created_at >= last_month).all()
    current = [o for o in orders if o.created_at >= this_month and o.status != OrderStatus.CANCELLED.value]
    previous = [o for o in orders if o.created_at < this_month and o.status != OrderStatus.CANCELLED.value]

    completed = [o for o in current if o.status == OrderStatus.COMPLETED.value]
    revenue = sum([o.total_amount for o in completed], Decimal("0"))
    prev_revenue = sum([o.total_amount for o in previous if o.status == OrderStatus.COMPLETED.value], Decimal("0"))

    pending = Order.query.filter_by(canteen_id=ctx.canteen_id, status=OrderStatus.PENDING.value).count()
    menu_total = MenuItem.query.filter_by(canteen_id=ctx.canteen_id, is_active=True).count()

    return {
        "total_revenue_month": str(revenue.quantize(Decimal("0.01"))),
        "total_orders_month": len(current),
        "pending_orders_total": pending,
        "menu_items_total": menu_total,
        "revenue_growth_percentage": _growth(revenue, prev_revenue),
        "orders_growth_percentage": _growth(len(current), len(previous)),
        "avg_order_value": str((revenue / len(completed)).quantize(Decimal("0.01"))) if completed else "0.00",
    }


def popular_items(ctx, limit=5):
    orders = (
        Order.query.filter(Order.canteen_id == ctx.canteen_id, Order.status != OrderStatus.CANCELLED.value)
        .options(selectinload(Order.items).selectinload(OrderItem.menu_item))
        .all()
    )
    top = {}
    for o in orders:
        for it in o.items:
            if it.menu_item is None:
                continue
            entry = top.setdefault(it.menu_item.name, {"name": it.menu_item.name, "quantity": 0, "revenue": Decimal("0")})
            entry["quantity"] += it.quantity
            entry["revenue"] += it.total_price
    ranked = sorted(top.values(), key=lambda x: (-x["quantity"], x["name"]))[:limit]
    return [{**r, "revenue": str(r["revenue"].quantize(Decimal("0.01")))} for r in ranked]


def dashboard_data(ctx, now=None):
    recent = order_workflow.list_orders(ctx, limit=5)
    return {
        "stats": dashboard_stats(ctx, now=now),
        "recent_orders": [
            {**o.to_dict(with_items=False), "item_count": sum(it.quantity for it in o.items)}
            for o in recent
        ],
        "popular_items": popular_items(ctx),
    }
