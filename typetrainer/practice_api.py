# typetrainer/practice_api.py
"""
Practice endpoints: the JSON surface of the persistence gateway, plus layout
helpers so a thin client can ask the server how a text reflows.
"""
from flask import Blueprint, request, jsonify, current_app

from .auth import token_required
from .errors import PersistenceFailure, TextNotFound, InputValidationError
from .gateway import ALREADY_ZERO, SqlGateway
from .models import db, Text
from .positions import clamp_index, to_position
from .reflow import split_into_lines, total_display_length
from .stats import completion_percent
from .validation import parse_amount, parse_layout, parse_line_stats, parse_progress, parse_text_id
from .width import width_for_pixels

practice_bp = Blueprint("practice", __name__)


def _gateway() -> SqlGateway:
    return SqlGateway()


def _owned_text(user_id: int, text_id: int) -> Text:
    text = Text.query.filter_by(id=text_id, user_id=user_id).first()
    if text is None:
        raise TextNotFound(text_id, user_id)
    return text


def _layout_args() -> tuple[int, int]:
    cfg = current_app.config
    args = request.args
    if args.get("container_px") and args.get("glyph_px"):
        try:
            container = float(args["container_px"])
            glyph = float(args["glyph_px"])
        except ValueError:
            raise InputValidationError("container_px and glyph_px must be numbers", "container_px")
        if glyph <= 0:
            raise InputValidationError("glyph_px must be positive", "glyph_px")
        width = width_for_pixels(
            container, glyph,
            buffer=cfg["WIDTH_SAFETY_BUFFER"],
            minimum=cfg["MIN_TARGET_WIDTH"],
            default=cfg["DEFAULT_TARGET_WIDTH"],
        )
        args = {**args.to_dict(), "width": width}
    return parse_layout(
        args,
        default_width=cfg["DEFAULT_TARGET_WIDTH"],
        minimum=cfg["MIN_TARGET_WIDTH"],
        max_lines=cfg["MAX_LINES_PER_BLOCK"],
        default_lines=cfg["DEFAULT_LINES_PER_BLOCK"],
    )


@practice_bp.route("/practice/<int:text_id>", methods=["GET"])
@token_required
def practice_text(current_user, text_id):
    loaded = _gateway().load_text(text_id, current_user.id)
    width, per_block = _layout_args()
    lines = split_into_lines(loaded.content, width) if loaded.content else []
    total = total_display_length(lines)
    return jsonify({
        "text_id": text_id,
        "content": loaded.content,
        "progress_index": loaded.progress_index,
        "coins": loaded.coins,
        "target_width": width,
        "lines_per_block": per_block,
        "total_length": total,
        "completion": completion_percent(loaded.progress_index, total, loaded.content),
    })


@practice_bp.route("/practice/<int:text_id>/layout", methods=["GET"])
@token_required
def practice_layout(current_user, text_id):
    loaded = _gateway().load_text(text_id, current_user.id)
    width, per_block = _layout_args()
    lines = split_into_lines(loaded.content, width) if loaded.content else []
    total = total_display_length(lines)

    finished = total == 0 or (loaded.progress_index > 0 and loaded.progress_index >= total)
    index = total if finished else clamp_index(loaded.progress_index, total)
    pos = to_position(index, lines)
    return jsonify({
        "text_id": text_id,
        "target_width": width,
        "lines_per_block": per_block,
        "lines": lines,
        "total_length": total,
        "progress_index": index,
        "line_index": len(lines) if finished else pos.line_index,
        "offset": 0 if finished else pos.offset,
        "finished": finished,
        "completion": completion_percent(index, total, loaded.content),
    })


@practice_bp.route("/practice/progress", methods=["POST"])
@token_required
def save_progress(current_user):
    text_id, index = parse_progress(request.get_json(silent=True) or {})
    _owned_text(current_user.id, text_id)
    if not _gateway().save_progress(current_user.id, text_id, index):
        raise PersistenceFailure("Could not save progress")
    current_app.logger.info("Progress saved user=%s text=%s index=%s", current_user.id, text_id, index)
    return jsonify({"success": True, "progress_index": index})


@practice_bp.route("/practice/line-complete", methods=["POST"])
@token_required
def line_complete(current_user):
    seconds, acc = parse_line_stats(request.get_json(silent=True) or {})
    if not _gateway().record_line_completion(current_user.id, seconds, acc):
        raise PersistenceFailure("Could not record line statistics")
    db.session.refresh(current_user)
    return jsonify({
        "success": True,
        "lines_completed": current_user.lines_completed,
        "total_practice_seconds": round(current_user.total_practice_seconds or 0.0, 2),
        "average_accuracy": current_user.average_accuracy,
    })


@practice_bp.route("/practice/reward", methods=["POST"])
@token_required
def reward(current_user):
    amount = parse_amount(request.get_json(silent=True) or {}, current_app.config["LINE_REWARD_COINS"])
    if not _gateway().increment_reward(current_user.id, amount):
        raise PersistenceFailure("Could not update coins")
    db.session.refresh(current_user)
    return jsonify({"success": True, "currentCoinCount": current_user.coins})


@practice_bp.route("/practice/penalty", methods=["POST"])
@token_required
def penalty(current_user):
    data = request.get_json(silent=True) or {}
    limit = current_app.config["PENALTY_COINS"]
    amount = parse_amount(data, limit) if "amount" in data else limit
    result = _gateway().decrement_reward(current_user.id, amount)
    if result == ALREADY_ZERO:
        return jsonify({"success": False, "message": "Coin balance is already zero", "currentCoinCount": 0}), 400
    if not result:
        raise PersistenceFailure("Could not update coins")
    db.session.refresh(current_user)
    return jsonify({"success": True, "currentCoinCount": current_user.coins})


@practice_bp.route("/practice/complete", methods=["POST"])
@token_required
def complete(current_user):
    text_id = parse_text_id(request.get_json(silent=True) or {})
    _owned_text(current_user.id, text_id)
    if not _gateway().record_text_completion(current_user.id, text_id):
        raise PersistenceFailure("Could not record completion")
    db.session.refresh(current_user)
    current_app.logger.info("Text %s completed by user %s", text_id, current_user.id)
    return jsonify({"success": True, "texts_practiced": current_user.texts_practiced})
