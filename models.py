import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin

db = SQLAlchemy()


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


def _money(value):
    return str(Decimal(value).quantize(Decimal("0.01"))) if value is not None else None


class Role(str, enum.Enum):
    OWNER = "owner"
    MANAGER = "manager"
    CASHIER = "cashier"
    CHEF = "chef"
    INVENTORY_HANDLER = "inventory_handler"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderType(str, enum.Enum):
    DINE_IN = "dine_in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class Identity(UserMixin, db.Model):
    """Identity provider account. Profiles hang off ``Identity.id``."""
    __tablename__ = "identities"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255))  # null for OAuth-only accounts
    provider = db.Column(db.String(20), default="email", nullable=False)
    user_metadata = db.Column(db.JSON, default=dict, nullable=False)
    email_confirmed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)
    last_sign_in_at = db.Column(db.DateTime)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "provider": self.provider,
            "user_metadata": dict(self.user_metadata or {}),
            "email_confirmed_at": _iso(self.email_confirmed_at),
            "last_sign_in_at": _iso(self.last_sign_in_at),
        }


class Canteen(db.Model):
    __tablename__ = "canteens"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text)
    address = db.Column(db.String(255))
    phone = db.Column(db.String(20))
    email = db.Column(db.String(255))
    owner_id = db.Column(db.String(36), db.ForeignKey("identities.id"), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    # deleting a canteen takes its catalogue, orders and invitations with it;
    # staff profiles are detached (canteen_id -> NULL)
    categories = db.relationship("Category", backref="canteen", lazy=True, cascade="all, delete-orphan")
    menu_items = db.relationship("MenuItem", backref="canteen", lazy=True, cascade="all, delete-orphan")
    orders = db.relationship("Order", backref="canteen", lazy=True, cascade="all, delete-orphan")
    invitations = db.relationship("Invitation", backref="canteen", lazy=True, cascade="all, delete-orphan")
    staff = db.relationship("Profile", back_populates="canteen", lazy=True)

    def summary(self):
        return {"id": self.id, "name": self.name, "address": self.address}

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "owner_id": self.owner_id,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
        }


class Profile(db.Model):
    __tablename__ = "profiles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), db.ForeignKey("identities.id"), unique=True, nullable=False)
    email = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(120), nullable=False)
    role = db.Column(db.String(20), default=Role.OWNER.value, nullable=False)
    canteen_id = db.Column(db.Integer, db.ForeignKey("canteens.id"))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    phone = db.Column(db.String(20))
    avatar_url = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    canteen = db.relationship("Canteen", back_populates="staff")

    @property
    def is_unprovisioned(self):
        return self.role == Role.OWNER.value and self.canteen_id is None

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "canteen_id": self.canteen_id,
            "canteen": self.canteen.summary() if self.canteen else None,
            "is_active": self.is_active,
            "phone": self.phone,
            "avatar_url": self.avatar_url,
            "created_at": _iso(self.created_at),
        }


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    canteen_id = db.Column(db.Integer, db.ForeignKey("canteens.id"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "canteen_id": self.canteen_id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
        }


class MenuItem(db.Model):
    __tablename__ = "menu_items"
    __table_args__ = (
        db.CheckConstraint("price >= 0", name="ck_menu_items_price"),
        db.CheckConstraint("preparation_time >= 0", name="ck_menu_items_preparation_time"),
    )

    id = db.Column(db.Integer, primary_key=True)
    canteen_id = db.Column(db.Integer, db.ForeignKey("canteens.id"), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    preparation_time = db.Column(db.Integer, default=0, nullable=False)  # minutes
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_available = db.Column(db.Boolean, default=True, nullable=False)
    image_url = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=utcnow)

    category = db.relationship("Category", backref=db.backref("menu_items", lazy=True))

    def to_dict(self, with_category=False):
        data = {
            "id": self.id,
            "canteen_id": self.canteen_id,
            "category_id": self.category_id,
            "name": self.name,
            "description": self.description,
            "price": _money(self.price),
            "preparation_time": self.preparation_time,
            "is_active": self.is_active,
            "is_available": self.is_available,
            "image_url": self.image_url,
        }
        if with_category:
            data["category_name"] = self.category.name if self.category else None
        return data


class Order(db.Model):
    __tablename__ = "orders"
    __table_args__ = (db.CheckConstraint("total_amount >= 0", name="ck_orders_total_amount"),)

    id = db.Column(db.Integer, primary_key=True)
    canteen_id = db.Column(db.Integer, db.ForeignKey("canteens.id"), nullable=False)
    customer_name = db.Column(db.String(120))
    customer_phone = db.Column(db.String(20))
    order_type = db.Column(db.String(20), default=OrderType.DINE_IN.value, nullable=False)
    payment_method = db.Column(db.String(20), default=PaymentMethod.CASH.value, nullable=False)
    status = db.Column(db.String(20), default=OrderStatus.PENDING.value, nullable=False)
    total_amount = db.Column(db.Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    served_by = db.Column(db.String(36), db.ForeignKey("identities.id"))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    items = db.relationship("OrderItem", backref="order", lazy=True, cascade="all, delete-orphan")

    def to_dict(self, with_items=True):
        data = {
            "id": self.id,
            "canteen_id": self.canteen_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "order_type": self.order_type,
            "payment_method": self.payment_method,
            "status": self.status,
            "total_amount": _money(self.total_amount),
            "served_by": self.served_by,
            "notes": self.notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if with_items:
            data["order_items"] = [it.to_dict() for it in self.items]
        return data


class OrderItem(db.Model):
    """One line of an order. Prices are copied at creation and never recomputed."""
    __tablename__ = "order_items"
    __table_args__ = (db.CheckConstraint("quantity >= 1", name="ck_order_items_quantity"),)

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    menu_item_id = db.Column(db.Integer, db.ForeignKey("menu_items.id", ondelete="SET NULL"))
    quantity = db.Column(db.Integer, default=1, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    total_price = db.Column(db.Numeric(10, 2), nullable=False)
    special_instructions = db.Column(db.Text)

    menu_item = db.relationship("MenuItem", foreign_keys=[menu_item_id])

    def to_dict(self):
        return {
            "id": self.id,
            "menu_item_id": self.menu_item_id,
            "quantity": self.quantity,
            "unit_price": _money(self.unit_price),
            "total_price": _money(self.total_price),
            "special_instructions": self.special_instructions,
            "menu_item": (
                {"name": self.menu_item.name, "preparation_time": self.menu_item.preparation_time}
                if self.menu_item else None
            ),
        }


class Invitation(db.Model):
    __tablename__ = "invitations"

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(64), unique=True, nullable=False)
    email = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False)
    canteen_id = db.Column(db.Integer, db.ForeignKey("canteens.id"), nullable=False)
    invited_by = db.Column(db.String(36), db.ForeignKey("identities.id"))
    status = db.Column(db.String(20), default=InvitationStatus.PENDING.value, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    accepted_at = db.Column(db.DateTime)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "canteen_id": self.canteen_id,
            "invited_by": self.invited_by,
            "status": self.status,
            "expires_at": _iso(self.expires_at),
            "created_at": _iso(self.created_at),
            "accepted_at": _iso(self.accepted_at),
        }
