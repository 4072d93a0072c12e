from sqlalchemy.exc import OperationalError

import auth
import orders
from conftest import PASSWORD, Factory, sign_in
from models import Identity, Invitation, Profile, Role


def _menu_item(client, name="Samosa", price="15"):
    cat = client.post("/menu/categories", json={"name": f"{name} corner"}).get_json()
    resp = client.post("/menu/items", json={"name": name, "category_id": cat["id"], "price": price})
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def test_health_when_signed_out(client):
    assert client.get("/").get_json() == {"service": "Canteen Console", "status": "ok"}


def test_sign_up_lands_on_setup(client):
    resp = client.post("/auth/sign-up", json={"email": "New@Example.com", "password": PASSWORD,
                                               "full_name": "Nina"})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["user"]["email"] == "new@example.com"
    assert body["profile"]["role"] == "owner"
    assert body["needs_setup"] is True

    dash = client.get("/dashboard/").get_json()
    assert dash["needs_setup"] is True
    assert client.get("/orders/").status_code == 403


def test_sign_in_errors(client):
    resp = client.post("/auth/sign-in", json={"email": "nobody@example.com", "password": "x"})
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Invalid login credentials", "kind": "AuthenticationError"}


def test_signed_out_requests_are_rejected(client):
    assert client.get("/orders/").status_code == 401
    assert client.get("/auth/session").get_json()["user"] is None


def test_session_and_sign_out(owner_client):
    session = owner_client.get("/auth/session").get_json()
    assert session["profile"]["role"] == "owner"
    assert session["pages"] == ["dashboard", "staff", "menu", "orders", "settings"]

    owner_client.post("/auth/sign-out")
    assert owner_client.get("/auth/session").get_json()["user"] is None


def test_session_listeners_hear_sign_in_and_out(app, client):
    with app.app_context():
        Factory().owner()
    heard = []
    unsubscribe = auth.on_session_change(heard.append)
    try:
        sign_in(client, "owner@example.com")
        client.post("/auth/sign-out")
    finally:
        unsubscribe()
    assert heard[0] is not None and heard[1] is None


def test_order_flow_over_http(owner_client):
    biryani = _menu_item(owner_client, "Chicken Biryani", "150")
    samosa = _menu_item(owner_client, "Samosa", "15")

    resp = owner_client.post("/orders/", json={
        "customer_name": "Ankit",
        "order_type": "dine_in",
        "payment_method": "upi",
        "items": [{"menu_item_id": biryani["id"], "quantity": 1},
                  {"menu_item_id": samosa["id"], "quantity": 1, "special_instructions": "extra chutney"}],
    })
    assert resp.status_code == 201
    order = resp.get_json()
    assert order["total_amount"] == "165.00"
    assert order["status"] == "pending"
    assert len(order["order_items"]) == 2

    moved = owner_client.post(f"/orders/{order['id']}/status", json={"status": "preparing"})
    assert moved.get_json()["order"]["status"] == "preparing"

    back = owner_client.post(f"/orders/{order['id']}/status", json={"status": "pending"})
    assert back.status_code == 409
    assert back.get_json()["kind"] == "IllegalTransition"

    assert [o["id"] for o in owner_client.get("/orders/active").get_json()["orders"]] == [order["id"]]
    assert owner_client.get(f"/orders/{order['id'] + 1}").status_code == 404


def test_order_validation_over_http(owner_client):
    item = _menu_item(owner_client)
    resp = owner_client.post("/orders/", json={"items": [{"menu_item_id": item["id"], "quantity": 0}]})
    assert resp.status_code == 400
    assert owner_client.post("/orders/", json={"items": []}).status_code == 400


def test_orderable_items_hide_unavailable(owner_client):
    item = _menu_item(owner_client)
    _menu_item(owner_client, "Pakora", "20")
    owner_client.post(f"/menu/items/{item['id']}/availability", json={"is_available": False})
    names = [i["name"] for i in owner_client.get("/orders/menu-items").get_json()["menu_items"]]
    assert names == ["Pakora"]


def test_menu_validation_over_http(owner_client):
    cat = owner_client.post("/menu/categories", json={"name": "Snacks"}).get_json()
    resp = owner_client.post("/menu/items", json={"name": "Samosa", "category_id": cat["id"], "price": "-3"})
    assert resp.status_code == 400
    assert resp.get_json()["kind"] == "ValidationError"


def test_cashier_cannot_open_staff_page(app, client):
    with app.app_context():
        factory = Factory()
        owner = factory.owner()
        factory.member("cashier@example.com", Role.CASHIER.value, owner.canteen_id)
    sign_in(client, "cashier@example.com")

    assert client.get("/auth/session").get_json()["pages"] == ["dashboard", "orders"]
    assert client.get("/staff/").status_code == 403
    assert client.get("/menu/items").status_code == 403
    assert client.get("/orders/").status_code == 200


def test_invite_and_accept_over_http(app, owner_client):
    resp = owner_client.post("/staff/invitations", json={"email": "chef@example.com", "role": "chef"})
    assert resp.status_code == 201
    invite = resp.get_json()
    token = invite["link"].split("token=")[1]

    qr = owner_client.get(f"/staff/invitations/{invite['id']}/qr").get_json()
    assert qr["qr_png"].startswith("data:image/png;base64,")

    guest = app.test_client()
    details = guest.get(f"/auth/invitations/{token}").get_json()
    assert details["role"] == "chef"
    assert details["canteen_name"] == "Test Canteen"

    accepted = guest.post(f"/auth/invitations/{token}/accept",
                          json={"full_name": "Chetan Chef", "password": PASSWORD})
    assert accepted.status_code == 201
    assert accepted.get_json()["profile"]["role"] == "chef"

    again = guest.post(f"/auth/invitations/{token}/accept", json={"full_name": "X", "password": PASSWORD})
    assert again.status_code == 410

    sign_in(guest, "chef@example.com")
    assert guest.get("/menu/items").status_code == 200
    assert guest.get("/orders/").status_code == 403

    with app.app_context():
        assert Invitation.query.one().status == "accepted"
        assert Profile.query.filter_by(email="chef@example.com").one().canteen_id == owner_client.canteen_id


def test_staff_management_over_http(app, owner_client):
    with app.app_context():
        member = Factory().member("cashier@example.com", Role.CASHIER.value, owner_client.canteen_id)
        member_id = member.profile.id

    staff = owner_client.get("/staff/").get_json()["staff"]
    assert {m["email"] for m in staff} == {"owner@example.com", "cashier@example.com"}

    updated = owner_client.patch(f"/staff/{member_id}", json={"role": "manager"}).get_json()
    assert updated["member"]["role"] == "manager"
    toggled = owner_client.post(f"/staff/{member_id}/toggle-active").get_json()
    assert toggled["is_active"] is False


def test_canteen_settings_lifecycle(client):
    client.post("/auth/sign-up", json={"email": "fresh@example.com", "password": PASSWORD})
    created = client.post("/settings/canteen", json={"name": "Fresh Bites", "address": "MG Road"})
    assert created.status_code == 201

    assert client.get("/settings/canteen").get_json()["name"] == "Fresh Bites"
    patched = client.patch("/settings/canteen", json={"phone": "080-1234"}).get_json()
    assert patched["canteen"]["phone"] == "080-1234"

    assert client.post("/settings/canteen", json={"name": "Second"}).status_code == 400
    assert client.delete("/settings/canteen").status_code == 200
    assert client.get("/dashboard/").get_json()["needs_setup"] is True


def test_seed_then_dashboard(client):
    client.post("/auth/sign-up", json={"email": "seed@example.com", "password": PASSWORD, "full_name": "Sana"})
    resp = client.post("/dashboard/seed")
    assert resp.status_code == 201
    assert resp.get_json()["canteen"]["name"] == "Sana's Canteen"

    dash = client.get("/dashboard/").get_json()
    assert dash["needs_setup"] is False
    assert dash["stats"]["pending_orders_total"] == 1
    assert dash["stats"]["menu_items_total"] == 6
    assert len(dash["recent_orders"]) == 3


def test_profile_update(owner_client):
    resp = owner_client.patch("/auth/profile", json={"full_name": "Olivia Prime", "phone": "555"})
    assert resp.get_json()["full_name"] == "Olivia Prime"


def test_order_stream_reports_order_changes(owner_client):
    item = _menu_item(owner_client)
    resp = owner_client.get("/orders/stream", buffered=False)
    assert resp.mimetype == "text/event-stream"
    frames = iter(resp.response)
    assert next(frames).startswith(b"retry:")

    owner_client.post("/orders/", json={"items": [{"menu_item_id": item["id"], "quantity": 1}]})

    frame = next(frames)
    assert frame.startswith(b"event: change\n")
    assert f'"canteen_id": {owner_client.canteen_id}'.encode() in frame
    resp.close()


def test_oauth_sign_in_creates_owner(app, client, monkeypatch):
    monkeypatch.setattr(auth, "exchange_code", lambda settings, code, uri: {"access_token": "at-" + code})
    monkeypatch.setattr(auth, "fetch_userinfo",
                        lambda settings, token: {"email": "gina@example.com", "name": "Gina",
                                                 "email_verified": True})

    start = client.get("/auth/oauth/google")
    assert start.status_code == 302
    assert "client_id=client-id" in start.headers["Location"]
    with client.session_transaction() as sess:
        state = sess["oauth_state"]

    done = client.get(f"/auth/oauth/google/callback?state={state}&code=abc")
    assert done.status_code == 302
    session = client.get("/auth/session").get_json()
    assert session["user"]["provider"] == "google"
    assert session["profile"]["full_name"] == "Gina"
    assert session["needs_setup"] is True

    with app.app_context():
        assert Identity.query.filter_by(email="gina@example.com").one().password_hash is None


def test_oauth_rejects_bad_state(client):
    client.get("/auth/oauth/google")
    assert client.get("/auth/oauth/google/callback?state=forged&code=abc").status_code == 401


def test_oauth_unconfigured_provider(client):
    assert client.get("/auth/oauth/github").status_code == 401


def test_store_errors_become_json(owner_client, monkeypatch):
    def down(ctx, order_id):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(orders, "get_order", down)
    resp = owner_client.get("/orders/1")
    assert resp.status_code == 500
    assert resp.get_json()["kind"] == "StoreError"


def _oauth_callback(client, monkeypatch, userinfo):
    monkeypatch.setattr(auth, "exchange_code", lambda settings, code, uri: {"access_token": "at-" + code})
    monkeypatch.setattr(auth, "fetch_userinfo", lambda settings, token: userinfo)
    client.get("/auth/oauth/google")
    with client.session_transaction() as sess:
        state = sess["oauth_state"]
    return client.get(f"/auth/oauth/google/callback?state={state}&code=abc")


def test_oauth_refuses_unverified_email_for_existing_account(app, client, monkeypatch):
    with app.app_context():
        Factory().owner()

    resp = _oauth_callback(client, monkeypatch, {"email": "owner@example.com", "email_verified": False})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Email not confirmed with google"
    assert client.get("/auth/session").get_json()["user"] is None

    resp = _oauth_callback(client, monkeypatch, {"email": "owner@example.com"})
    assert resp.status_code == 401
    assert client.get("/auth/session").get_json()["user"] is None


def test_oauth_unverified_email_creates_no_identity(app, client, monkeypatch):
    resp = _oauth_callback(client, monkeypatch, {"email": "stranger@example.com", "email_verified": "true"})
    assert resp.status_code == 401
    with app.app_context():
        assert Identity.query.filter_by(email="stranger@example.com").first() is None


def test_bad_category_ids_are_validation_errors(owner_client):
    item = _menu_item(owner_client)

    created = owner_client.post("/menu/items", json={"name": "Lassi", "category_id": "abc", "price": "30"})
    assert created.status_code == 400
    assert created.get_json()["kind"] == "ValidationError"

    listed = owner_client.get("/menu/items?category_id=abc")
    assert listed.status_code == 400

    patched = owner_client.patch(f"/menu/items/{item['id']}", json={"category_id": "x1"})
    assert patched.status_code == 400
    assert patched.get_json()["kind"] == "ValidationError"


def test_form_posts_can_clear_flags(owner_client):
    cat = owner_client.post("/menu/categories", data={"name": "Drinks", "is_active": "off"}).get_json()
    assert cat["is_active"] is False

    item = owner_client.post("/menu/items", data={
        "name": "Lassi", "category_id": str(cat["id"]), "price": "30",
        "is_available": "false", "is_active": "on",
    }).get_json()
    assert item["is_available"] is False
    assert item["is_active"] is True

    flipped = owner_client.post(f"/menu/items/{item['id']}/availability", data={"is_available": "1"}).get_json()
    assert flipped["is_available"] is True
    cleared = owner_client.post(f"/menu/items/{item['id']}/availability", data={"is_available": "0"}).get_json()
    assert cleared["is_available"] is False

    canteen = owner_client.patch("/settings/canteen", data={"is_active": "false"}).get_json()
    assert canteen["canteen"]["is_active"] is False
