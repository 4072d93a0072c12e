from decimal import Decimal

import pytest
from sqlalchemy import event
from werkzeug.security import generate_password_hash

from app import create_app
from auth import SessionContext
from models import db, Canteen, Category, Identity, MenuItem, Profile, Role, utcnow
from store import feed

PASSWORD = "secret123"


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "PUBLIC_BASE_URL": "http://canteen.test",
        "OAUTH_GOOGLE_CLIENT_ID": "client-id",
        "OAUTH_GOOGLE_CLIENT_SECRET": "client-secret",
    })
    yield app
    with app.app_context():
        db.drop_all()
    feed.clear()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


class Factory:
    def identity(self, email, full_name=None, password=PASSWORD):
        identity = Identity(
            email=email,
            password_hash=generate_password_hash(password),
            user_metadata={"full_name": full_name} if full_name else {},
            email_confirmed_at=utcnow(),
        )
        db.session.add(identity)
        db.session.commit()
        return identity

    def owner(self, email="owner@example.com", canteen_name="Test Canteen"):
        identity = self.identity(email, full_name="Olivia Owner")
        canteen = Canteen(name=canteen_name, owner_id=identity.id)
        db.session.add(canteen)
        db.session.flush()
        profile = Profile(user_id=identity.id, email=email, full_name="Olivia Owner",
                          role=Role.OWNER.value, canteen_id=canteen.id)
        db.session.add(profile)
        db.session.commit()
        return SessionContext(identity=identity, profile=profile)

    def member(self, email, role, canteen_id, is_active=True):
        identity = self.identity(email, full_name=f"{role.title()} Person")
        profile = Profile(user_id=identity.id, email=email, full_name=f"{role.title()} Person",
                          role=role, canteen_id=canteen_id, is_active=is_active)
        db.session.add(profile)
        db.session.commit()
        return SessionContext(identity=identity, profile=profile)

    def category(self, ctx, name="Snacks"):
        cat = Category(canteen_id=ctx.canteen_id, name=name)
        db.session.add(cat)
        db.session.commit()
        return cat

    def menu_item(self, ctx, name, price, category=None, is_available=True, is_active=True):
        category = category or self.category(ctx, name=f"{name} category")
        item = MenuItem(canteen_id=ctx.canteen_id, category_id=category.id, name=name,
                        price=Decimal(str(price)), is_available=is_available, is_active=is_active)
        db.session.add(item)
        db.session.commit()
        return item


@pytest.fixture
def make(app_ctx):
    return Factory()


@pytest.fixture
def sql_log(app_ctx):
    """Collects every SQL statement sent to the database while the test runs."""
    statements = []

    def record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    engine = db.engine
    event.listen(engine, "before_cursor_execute", record)
    yield statements
    event.remove(engine, "before_cursor_execute", record)


def sign_in(client, email, password=PASSWORD):
    resp = client.post("/auth/sign-in", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return resp


@pytest.fixture
def owner_client(app, client):
    with app.app_context():
        ctx = Factory().owner()
        client.canteen_id = ctx.canteen_id
    sign_in(client, "owner@example.com")
    return client
