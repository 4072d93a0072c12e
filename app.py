import logging

from flask import Flask, jsonify, redirect, url_for
from flask_login import LoginManager, current_user
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from errors import ConsoleError
from models import db, Identity
import store  # noqa: F401  registers the order change-feed hooks

from auth_routes import auth_bp
from dashboard_routes import dashboard_bp
from menu_routes import menu_bp
from order_routes import order_bp
from settings_routes import settings_bp
from staff_routes import staff_bp


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.logger.setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)

    login_manager = LoginManager(app)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(Identity, user_id)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Not signed in", "kind": "AuthenticationError"}), 401

    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(dashboard_bp, url_prefix="/dashboard")
    app.register_blueprint(menu_bp, url_prefix="/menu")
    app.register_blueprint(order_bp, url_prefix="/orders")
    app.register_blueprint(staff_bp, url_prefix="/staff")
    app.register_blueprint(settings_bp, url_prefix="/settings")

    @app.errorhandler(ConsoleError)
    def handle_console_error(e):
        log = app.logger.error if e.status_code >= 500 else app.logger.warning
        log("%s: %s", e.__class__.__name__, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_store_error(e):
        db.session.rollback()
        app.logger.exception("data store request failed")
        return jsonify({"error": "The data store could not complete the request", "kind": "StoreError"}), 500

    @app.route("/")
    def index():
        if current_user.is_authenticated:
            return redirect(url_for("dashboard.index"))
        return jsonify({"service": "Canteen Console", "status": "ok"})

    with app.app_context():
        db.create_all()
    return app


if __name__ == "__main__":
    create_app().run(debug=True)
