from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user

from squares import db
from squares.models import Admin

main = Blueprint('main', __name__)


@main.route('/login', methods=['POST', 'OPTIONS'])
def login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    admin = Admin.query.filter_by(email=(data.get('email') or '').strip().lower()).first()
    if admin and admin.check_password(data.get('password') or ''):
        login_user(admin)
        return jsonify({"success": True, "user": admin.to_dict()})
    return jsonify({"success": False, "message": "Invalid credentials"}), 401


@main.route('/register', methods=['POST', 'OPTIONS'])
def register():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    if not email or not data.get('password'):
        return jsonify({"success": False, "message": "Email and password are required"}), 400
    if Admin.query.filter_by(email=email).first():
        return jsonify({"success": False, "message": "Email already registered"}), 400

    admin = Admin(email=email, name=data.get('name') or email.split('@')[0])
    admin.set_password(data['password'])
    db.session.add(admin)
    db.session.commit()
    login_user(admin)
    return jsonify({"success": True, "user": admin.to_dict()}), 201


@main.route('/check_login', methods=['GET', 'OPTIONS'])
def check_login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200

    @login_required
    def protected_check():
        return jsonify({"success": True, "user": current_user.to_dict()})

    return protected_check()


@main.route('/logout', methods=['POST', 'OPTIONS'])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})
