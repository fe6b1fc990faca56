# typetrainer/auth.py
from flask import Blueprint, request, jsonify, current_app
from werkzeug.security import generate_password_hash, check_password_hash
from functools import wraps
import jwt, datetime, re

from flask_cors import cross_origin

from .models import db, User
from .gateway import safe_commit

auth_bp = Blueprint("auth", __name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# ----------------------------
# JWT helpers
# ----------------------------
def create_token(user_id: int) -> str:
    now = datetime.datetime.now(datetime.timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + datetime.timedelta(days=int(current_app.config.get("JWT_TTL_DAYS", 7))),
    }
    token = jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm="HS256")
    return token if isinstance(token, str) else token.decode("utf-8")


def _get_bearer_token():
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1]
    return request.args.get("token") or None


def token_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        # Allow CORS preflight without auth
        if request.method == "OPTIONS":
            return ("", 204)

        token = _get_bearer_token()
        if not token:
            return jsonify({"message": "Authorization token is missing"}), 401
        try:
            data = jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=["HS256"])
            user = db.session.get(User, int(data["sub"]))
            if not user:
                raise ValueError("User not found")
        except jwt.ExpiredSignatureError:
            return jsonify({"message": "Authorization token has expired"}), 401
        except (jwt.InvalidTokenError, KeyError, TypeError, ValueError) as e:
            return jsonify({"message": "Authorization token is invalid", "error": str(e)}), 401
        return f(user, *args, **kwargs)
    return decorated


def _user_json(user: User) -> dict:
    return {"id": user.id, "email": user.email, "name": user.name, "coins": user.coins or 0}


# ----------------------------
# Auth routes
# ----------------------------
@auth_bp.route("/signup", methods=["POST", "OPTIONS"])
@cross_origin()
def signup():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = (data.get("password") or "").strip()
    name = (data.get("name") or "").strip()

    if not email or not password:
        return jsonify({"message": "Email and password are required"}), 400
    if not EMAIL_RE.match(email):
        return jsonify({"message": "Email address is not valid"}), 400
    if len(password) < 6:
        return jsonify({"message": "Password must be at least 6 characters"}), 400
    if User.query.filter_by(email=email).first():
        return jsonify({"message": "A user with this email already exists"}), 400

    user = User(email=email, password_hash=generate_password_hash(password), name=name or None)
    db.session.add(user)
    safe_commit()
    current_app.logger.info("New user %s", user.id)

    token = create_token(user.id)
    return jsonify({"token": token, "user": _user_json(user)}), 201


@auth_bp.route("/login", methods=["POST", "OPTIONS"])
@cross_origin()
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = (data.get("password") or "").strip()

    if not email or not password:
        return jsonify({"message": "Email and password are required"}), 400

    user = User.query.filter_by(email=email).first()
    if not user:
        return jsonify({"message": "Invalid email or password"}), 401

    try:
        valid = check_password_hash(user.password_hash, password)
    except ValueError as exc:
        current_app.logger.exception("Password hash check failed for user %s: %s", user.id, exc)
        return jsonify({"message": "Invalid email or password"}), 401

    if not valid:
        return jsonify({"message": "Invalid email or password"}), 401

    token = create_token(user.id)
    return jsonify({"token": token, "user": _user_json(user)}), 200


@auth_bp.route("/me", methods=["GET", "OPTIONS"])
@cross_origin()
@token_required
def me(current_user):
    created = getattr(current_user, "created_at", None)
    out = _user_json(current_user)
    out["created_at"] = created.isoformat() if created else None
    return jsonify(out)
