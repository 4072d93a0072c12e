import logging
from datetime import timedelta
from decimal import Decimal

from errors import NotFound, ValidationError
from models import db, Canteen, Category, MenuItem, Order, OrderItem, OrderStatus, utcnow
from permissions import check_action
from utils.forms import bool_value

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "description", "address", "phone", "email", "is_active")

SAMPLE_CATEGORIES = [
    ("Main Course", "Hearty and delicious main courses."),
    ("Snacks", "Quick and tasty snacks."),
    ("Beverages", "Cool and refreshing drinks."),
]

# (category, name, price, preparation minutes)
SAMPLE_ITEMS = [
    ("Main Course", "Chicken Biryani", "150", 25),
    ("Main Course", "Paneer Butter Masala", "120", 20),
    ("Snacks", "Samosa", "15", 10),
    ("Snacks", "Veg Sandwich", "40", 5),
    ("Beverages", "Masala Chai", "10", 5),
    ("Beverages", "Fresh Lime Soda", "25", 3),
]

# (customer, status, payment, minutes ago, [(item, qty)])
SAMPLE_ORDERS = [
    ("Ankit", OrderStatus.COMPLETED.value, "upi", 24 * 60, [("Chicken Biryani", 1), ("Samosa", 1)]),
    ("Bhavna", OrderStatus.PREPARING.value, "cash", 10, [("Paneer Butter Masala", 1), ("Masala Chai", 1)]),
    ("Chirag", OrderStatus.PENDING.value, "card", 2, [("Masala Chai", 5)]),
]


def get_canteen(ctx):
    canteen = db.session.get(Canteen, ctx.canteen_id) if ctx.canteen_id else None
    if canteen is None:
        raise NotFound("No canteen is set up for this account")
    return canteen


def _require_unprovisioned(ctx):
    check_action(ctx, "canteen.create")
    if ctx.profile.canteen_id is not None:
        raise ValidationError("You already have a canteen")


def create_canteen(ctx, name, description=None, address=None, phone=None, email=None):
    _require_unprovisioned(ctx)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Canteen name is required")
    canteen = Canteen(
        name=name,
        description=description,
        address=address,
        phone=phone,
        email=email,
        owner_id=ctx.user_id,
    )
    db.session.add(canteen)
    db.session.flush()
    ctx.profile.canteen_id = canteen.id
    db.session.commit()
    logger.info("canteen %s created by %s", canteen.id, ctx.user_id)
    return canteen


def update_canteen(ctx, **fields):
    canteen = get_canteen(ctx)
    for key in EDITABLE_FIELDS:
        if key in fields:
            value = fields[key]
            setattr(canteen, key, bool_value(value) if key == "is_active" else value)
    if not (canteen.name or "").strip():
        raise ValidationError("Canteen name is required")
    db.session.commit()
    return canteen


def delete_canteen(ctx):
    """Delete the canteen with its menu, orders and invitations; staff are detached."""
    check_action(ctx, "canteen.delete")
    canteen = get_canteen(ctx)
    canteen_id = canteen.id
    db.session.delete(canteen)
    db.session.commit()
    logger.warning("canteen %s deleted by %s", canteen_id, ctx.user_id)


def seed_sample_canteen(ctx):
    """Give a brand-new owner a canteen with a small menu and a few orders to explore."""
    check_action(ctx, "canteen.seed")
    _require_unprovisioned(ctx)

    canteen = Canteen(
        name=f"{ctx.profile.full_name}'s Canteen",
        description="A fresh canteen ready for business!",
        owner_id=ctx.user_id,
    )
    db.session.add(canteen)
    db.session.flush()

    categories = {}
    for name, description in SAMPLE_CATEGORIES:
        categories[name] = Category(canteen_id=canteen.id, name=name, description=description)
    db.session.add_all(categories.values())
    db.session.flush()

    items = {}
    for cat, name, price, minutes in SAMPLE_ITEMS:
        items[name] = MenuItem(
            canteen_id=canteen.id,
            category_id=categories[cat].id,
            name=name,
            price=Decimal(price),
            preparation_time=minutes,
        )
    db.session.add_all(items.values())
    db.session.flush()

    now = utcnow()
    for customer, status, payment, minutes_ago, lines in SAMPLE_ORDERS:
        order = Order(
            canteen_id=canteen.id,
            customer_name=customer,
            status=status,
            payment_method=payment,
            served_by=ctx.user_id if status == OrderStatus.COMPLETED.value else None,
            created_at=now - timedelta(minutes=minutes_ago),
            total_amount=sum(items[name].price * qty for name, qty in lines),
        )
        order.items = [
            OrderItem(
                menu_item_id=items[name].id,
                quantity=qty,
                unit_price=items[name].price,
                total_price=items[name].price * qty,
            )
            for name, qty in lines
        ]
        db.session.add(order)

    ctx.profile.canteen_id = canteen.id
    db.session.commit()
    logger.info("sample canteen %s seeded for %s", canteen.id, ctx.user_id)
    return canteen
