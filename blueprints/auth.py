# type: ignore
# pyright: ignore
from flask import Blueprint, request, jsonify, current_app
from flask_login import login_user, logout_user, login_required, current_user
from werkzeug.security import generate_password_hash, check_password_hash
from sqlalchemy import or_

from errors import AuthorizationError, NotFoundError, ValidationError
from models import User, AccountStatus
from serializers import user_to_dict
from transaction import transaction

auth_bp = Blueprint('auth', __name__)

MIN_PASSWORD_LENGTH = 6


def payload():
    return request.get_json(silent=True) or request.form


# ---------------------------------------------
# LOGIN
# ---------------------------------------------
@auth_bp.route('/login', methods=['POST'])
def login():
    data = payload()
    identifier = (data.get('login_id') or '').strip()
    password = data.get('password') or ''

    if not identifier or not password:
        raise ValidationError("Please enter your login ID and password.")

    # Allow login via login id OR email
    user = User.query.filter(
        or_(User.login_id == identifier, User.email == identifier)
    ).first()

    if not user:
        raise NotFoundError("User not found. Check your login ID or email.")

    if not check_password_hash(user.password_hash, password):
        current_app.logger.warning("Failed login attempt for %s", identifier)
        raise AuthorizationError("Incorrect password. Try again.")

    if user.account_status != AccountStatus.ACTIVE:
        raise AuthorizationError("Your account is inactive. Please contact the librarian.")

    login_user(user)
    current_app.logger.info("User %s logged in (role=%s)", user.id, user.role)

    return jsonify({
        "success": True,
        "user": user_to_dict(user),
        "must_change_password": bool(user.must_change_password),
    })


# ---------------------------------------------
# LOGOUT
# ---------------------------------------------
@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True, "message": "You have been logged out."})


# ---------------------------------------------
# CHANGE PASSWORD
# ---------------------------------------------
@auth_bp.route('/account/password', methods=['POST'])
@login_required
def change_password():
    data = payload()
    current_password = (data.get('current_password') or '').strip()
    new_password = (data.get('new_password') or '').strip()
    confirm_password = (data.get('confirm_password') or '').strip()

    # Validation
    if not current_password or not new_password or not confirm_password:
        raise ValidationError("Please fill in all password fields.")
    if new_password != confirm_password:
        raise ValidationError("New passwords do not match.")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"New password must be at least {MIN_PASSWORD_LENGTH} characters long."
        )
    if new_password == current_password:
        raise ValidationError("New password must be different from current password.")

    if not check_password_hash(current_user.password_hash, current_password):
        raise ValidationError("Current password is incorrect.")

    with transaction():
        current_user.password_hash = generate_password_hash(new_password)
        current_user.must_change_password = False

    current_app.logger.info("Password changed for user %s", current_user.id)
    return jsonify({"success": True, "message": "Password changed successfully!"})
