import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import joinedload

from errors import NotFound, ValidationError
from models import db, Category, MenuItem
from utils.forms import bool_value

logger = logging.getLogger(__name__)


def _parse_price(value):
    if value is None or str(value).strip() == "":
        raise ValidationError("Price is required")
    try:
        price = Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid price '{value}'")
    if price < 0:
        raise ValidationError("Price cannot be negative")
    return price


def _parse_minutes(value):
    try:
        minutes = int(value or 0)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid preparation time '{value}'")
    if minutes < 0:
        raise ValidationError("Preparation time cannot be negative")
    return minutes


def _parse_id(value, label):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label} '{value}'")


def _required_name(value, what):
    name = (value or "").strip()
    if not name:
        raise ValidationError(f"{what} name is required")
    return name


def _scoped(ctx, model, obj_id, label):
    obj = db.session.get(model, obj_id)
    if obj is None or obj.canteen_id != ctx.canteen_id:
        raise NotFound(f"{label} {obj_id} not found")
    return obj


# ---- Categories ----

def list_categories(ctx):
    return Category.query.filter_by(canteen_id=ctx.canteen_id).order_by(Category.name).all()


def create_category(ctx, name, description=None, is_active=True):
    cat = Category(
        canteen_id=ctx.canteen_id,
        name=_required_name(name, "Category"),
        description=(description or "").strip() or None,
        is_active=bool_value(is_active),
    )
    db.session.add(cat)
    db.session.commit()
    return cat


def update_category(ctx, category_id, **fields):
    cat = _scoped(ctx, Category, category_id, "Category")
    if "name" in fields:
        cat.name = _required_name(fields["name"], "Category")
    if "description" in fields:
        cat.description = (fields["description"] or "").strip() or None
    if "is_active" in fields:
        cat.is_active = bool_value(fields["is_active"])
    db.session.commit()
    return cat


def delete_category(ctx, category_id):
    cat = _scoped(ctx, Category, category_id, "Category")
    if cat.menu_items:
        raise ValidationError(f"Move or delete the {len(cat.menu_items)} item(s) in {cat.name} first")
    db.session.delete(cat)
    db.session.commit()


# ---- Menu items ----

def list_menu_items(ctx, category_id=None, search=None, orderable_only=False):
    query = (
        MenuItem.query.filter_by(canteen_id=ctx.canteen_id)
        .options(joinedload(MenuItem.category))
        .order_by(MenuItem.name)
    )
    if category_id and category_id != "all":
        query = query.filter(MenuItem.category_id == _parse_id(category_id, "category"))
    if search:
        query = query.filter(MenuItem.name.ilike(f"%{search.strip()}%"))
    if orderable_only:
        query = query.filter(MenuItem.is_active.is_(True), MenuItem.is_available.is_(True))
    return query.all()


def create_menu_item(ctx, name, category_id, price, description=None, preparation_time=0,
                     is_active=True, is_available=True, image_url=None):
    name = _required_name(name, "Item")
    if not category_id:
        raise ValidationError("Category is required")
    price = _parse_price(price)
    minutes = _parse_minutes(preparation_time)
    category = _scoped(ctx, Category, _parse_id(category_id, "category"), "Category")

    item = MenuItem(
        canteen_id=ctx.canteen_id,
        category_id=category.id,
        name=name,
        description=(description or "").strip() or None,
        price=price,
        preparation_time=minutes,
        is_active=bool_value(is_active),
        is_available=bool_value(is_available),
        image_url=(image_url or "").strip() or None,
    )
    db.session.add(item)
    db.session.commit()
    logger.info("menu item %s (%s) added to canteen %s", item.id, item.name, ctx.canteen_id)
    return item


def update_menu_item(ctx, item_id, **fields):
    """Edit a menu item. Existing order lines keep the price they were sold at."""
    item = _scoped(ctx, MenuItem, item_id, "Menu item")
    if "name" in fields:
        item.name = _required_name(fields["name"], "Item")
    if "category_id" in fields:
        if not fields["category_id"]:
            raise ValidationError("Category is required")
        item.category_id = _scoped(ctx, Category, _parse_id(fields["category_id"], "category"), "Category").id
    if "price" in fields:
        item.price = _parse_price(fields["price"])
    if "preparation_time" in fields:
        item.preparation_time = _parse_minutes(fields["preparation_time"])
    if "description" in fields:
        item.description = (fields["description"] or "").strip() or None
    if "image_url" in fields:
        item.image_url = (fields["image_url"] or "").strip() or None
    for flag in ("is_active", "is_available"):
        if flag in fields:
            setattr(item, flag, bool_value(fields[flag]))
    db.session.commit()
    return item


def set_availability(ctx, item_id, available):
    return update_menu_item(ctx, item_id, is_available=available)


def delete_menu_item(ctx, item_id):
    item = _scoped(ctx, MenuItem, item_id, "Menu item")
    db.session.delete(item)
    db.session.commit()
    logger.info("menu item %s deleted from canteen %s", item_id, ctx.canteen_id)
