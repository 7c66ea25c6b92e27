# type: ignore
# pyright: ignore
# app.py

from flask import Flask, jsonify

import config
from errors import LibraryError
from extension import db, login_manager, migrate
from money import format_money
from models import User

# Import all blueprints
from blueprints.auth import auth_bp
from blueprints.student import student_bp
from blueprints.librarian import librarian_bp

CONFIG_KEYS = (
    "SECRET_KEY",
    "LOG_LEVEL",
    "DEFAULT_MAX_BOOKS",
    "DEFAULT_BORROW_PERIOD_DAYS",
    "DEFAULT_OVERDUE_FINE_PER_DAY",
    "RESERVATION_EXPIRY_DAYS",
    "PICKUP_WINDOW_HOURS",
    "CURRENCY",
)


def create_app(overrides=None):
    app = Flask(__name__)

    # ------------------------------------
    # APP CONFIG
    # ------------------------------------
    app.config["SQLALCHEMY_DATABASE_URI"] = config.DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    for key in CONFIG_KEYS:
        app.config[key] = getattr(config, key)

    if overrides:
        app.config.update(overrides)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    # ------------------------------------
    # INITIALIZE EXTENSIONS
    # ------------------------------------
    db.init_app(app)
    login_manager.init_app(app)

    # Enable Flask-Migrate
    migrate.init_app(app, db)

    # ------------------------------------
    # TEMPLATE FILTERS
    # ------------------------------------
    app.add_template_filter(format_money, "money")

    # ------------------------------------
    # USER LOADER (Flask-Login)
    # ------------------------------------
    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    # ------------------------------------
    # UNAUTHORIZED HANDLER
    # ------------------------------------
    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({
            "success": False,
            "error": "not_authenticated",
            "message": "Please log in to access that page.",
        }), 401

    # ------------------------------------
    # ERROR HANDLER
    # ------------------------------------
    @app.errorhandler(LibraryError)
    def library_error(error):
        if error.status_code >= 500:
            app.logger.error("%s: %s", error.kind, error.message)
        else:
            app.logger.warning("%s: %s", error.kind, error.message)
        return jsonify(error.to_dict()), error.status_code

    # ------------------------------------
    # REGISTER BLUEPRINTS
    # ------------------------------------
    app.register_blueprint(auth_bp)
    app.register_blueprint(student_bp)
    app.register_blueprint(librarian_bp)

    # ------------------------------------
    # ROOT ROUTE
    # ------------------------------------
    @app.route("/")
    def index():
        return jsonify({"success": True, "service": "library-circulation"})

    return app


# ------------------------------------
# RUN THE APPLICATION
# ------------------------------------
if __name__ == "__main__":
    app = create_app()
    app.run(debug=config.DEBUG)
