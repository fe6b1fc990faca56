# typetrainer/api.py
from flask import Blueprint, request, jsonify, current_app

from .auth import token_required
from .models import db, Text, TextProgress
from .gateway import safe_commit
from .profile_stats import build_stats_payload
from .textprep import cleanup_text

api_bp = Blueprint("api", __name__)


# ---------------------------
# Helpers
# ---------------------------

def _progress_map(user_id: int) -> dict[int, int]:
    rows = TextProgress.query.filter_by(user_id=user_id).all()
    return {r.text_id: r.progress_index for r in rows}


def _text_json(text: Text, progress_index: int = 0, with_content: bool = False) -> dict:
    out = {
        "id": text.id,
        "title": text.title,
        "length": len(text.content or ""),
        "progress_index": progress_index,
        "created_at": text.created_at.isoformat() if text.created_at else None,
        "updated_at": text.updated_at.isoformat() if text.updated_at else None,
    }
    if with_content:
        out["content"] = text.content or ""
    return out


# ---------------------------
# Texts
# ---------------------------

@api_bp.route("/texts", methods=["POST"])
@token_required
def create_text(current_user):
    data = request.get_json(silent=True) or {}
    title = (data.get("title") or "").strip()
    raw = data.get("content")

    if not title:
        return jsonify({"message": "Title is required"}), 400
    if not isinstance(raw, str) or not raw.strip():
        return jsonify({"message": "Content is required"}), 400
    if len(title) > 200:
        return jsonify({"message": "Title must be at most 200 characters"}), 400

    content = cleanup_text(raw)
    limit = current_app.config.get("MAX_TEXT_CHARS", 200_000)
    if len(content) > limit:
        return jsonify({"message": f"Content must be at most {limit} characters"}), 400

    text = Text(user_id=current_user.id, title=title, content=content)
    db.session.add(text)
    safe_commit()
    current_app.logger.info("User %s stored text %s (%d chars)", current_user.id, text.id, len(content))
    return jsonify(_text_json(text, with_content=True)), 201


@api_bp.route("/texts", methods=["GET"])
@token_required
def list_texts(current_user):
    texts = (
        Text.query.filter_by(user_id=current_user.id)
        .order_by(Text.created_at.desc(), Text.id.desc())
        .all()
    )
    progress = _progress_map(current_user.id)
    return jsonify({"texts": [_text_json(t, progress.get(t.id, 0)) for t in texts]})


@api_bp.route("/texts/<int:text_id>", methods=["GET"])
@token_required
def get_text(current_user, text_id):
    text = Text.query.filter_by(id=text_id, user_id=current_user.id).first()
    if not text:
        return jsonify({"message": "Text not found"}), 404
    prog = TextProgress.query.filter_by(user_id=current_user.id, text_id=text_id).first()
    return jsonify(_text_json(text, prog.progress_index if prog else 0, with_content=True))


# ---------------------------
# Stats
# ---------------------------

@api_bp.route("/my/stats", methods=["GET"])
@token_required
def my_stats(current_user):
    return jsonify(build_stats_payload(current_user))
