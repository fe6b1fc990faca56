# typetrainer/sessions_api.py
"""
Server-hosted practice sessions.

The browser can either run the engine itself and use the /practice endpoints,
or open a session here and post raw events. Sessions live in process memory
and belong to the user who opened them; DELETE saves and discards one.
Sessions left idle past SESSION_IDLE_SECONDS are saved and dropped too.
"""
import threading
import time
import uuid

from flask import Blueprint, request, jsonify, current_app

from .auth import token_required
from .errors import InputValidationError
from .events import event_from_dict
from .dispatch import BackgroundDispatcher, InlineDispatcher
from .gateway import SqlGateway
from .session import PracticeSession
from .validation import parse_text_id

sessions_bp = Blueprint("sessions", __name__)


class SessionRegistry:
    """Open sessions by id. Idle ones are evicted, oldest first past the per-user cap."""

    def __init__(self, idle_seconds: float = 1800, max_per_user: int = 5, clock=time.monotonic):
        self.idle_seconds = idle_seconds
        self.max_per_user = max_per_user
        self.clock = clock
        self._lock = threading.Lock()
        # sid -> [user_id, session, lock, last_used]
        self._sessions: dict[str, list] = {}

    def add(self, user_id: int, session: PracticeSession) -> tuple[str, list]:
        sid = uuid.uuid4().hex
        now = self.clock()
        with self._lock:
            evicted = self._expired(now)
            mine = sorted(
                ((entry[3], key) for key, entry in self._sessions.items() if entry[0] == user_id),
                key=lambda pair: pair[0],
            )
            while self.max_per_user and len(mine) >= self.max_per_user:
                _, key = mine.pop(0)
                evicted.append((key, self._sessions.pop(key)))
            self._sessions[sid] = [user_id, session, threading.Lock(), now]
        return sid, evicted

    def get(self, sid: str, user_id: int):
        now = self.clock()
        with self._lock:
            evicted = self._expired(now)
            entry = self._sessions.get(sid)
            if entry is not None and entry[0] == user_id:
                entry[3] = now
            else:
                entry = None
        if entry is None:
            return None, None, evicted
        return entry[1], entry[2], evicted

    def pop(self, sid: str, user_id: int):
        with self._lock:
            entry = self._sessions.get(sid)
            if entry is None or entry[0] != user_id:
                return None, None
            del self._sessions[sid]
        return entry[1], entry[2]

    def _expired(self, now: float) -> list:
        if not self.idle_seconds:
            return []
        stale = [key for key, entry in self._sessions.items() if now - entry[3] > self.idle_seconds]
        return [(key, self._sessions.pop(key)) for key in stale]

    def __len__(self):
        with self._lock:
            return len(self._sessions)


def _registry() -> SessionRegistry:
    ext = current_app.extensions
    if "typetrainer_sessions" not in ext:
        cfg = current_app.config
        ext["typetrainer_sessions"] = SessionRegistry(
            idle_seconds=cfg["SESSION_IDLE_SECONDS"],
            max_per_user=cfg["MAX_SESSIONS_PER_USER"],
        )
    return ext["typetrainer_sessions"]


def _close_evicted(evicted) -> None:
    """Save and drop sessions the registry let go of."""
    for sid, (user_id, session, lock, _last_used) in evicted:
        with lock:
            step = session.close()
        current_app.logger.info(
            "Evicted idle session %s of user %s at index %s", sid, user_id, step.state.flat_index
        )


def _dispatcher():
    cfg = current_app.config
    if cfg["SESSION_DISPATCHER"] == "background":
        return BackgroundDispatcher(max_workers=cfg["DISPATCH_WORKERS"])
    return InlineDispatcher()


def _gateway(dispatcher) -> SqlGateway:
    # worker threads need their own app context
    if isinstance(dispatcher, BackgroundDispatcher):
        return SqlGateway(app=current_app._get_current_object())
    return SqlGateway()


def _not_found():
    return jsonify({"success": False, "message": "Session not found"}), 404


@sessions_bp.route("/sessions", methods=["POST"])
@token_required
def open_session(current_user):
    data = request.get_json(silent=True) or {}
    text_id = parse_text_id(data)
    cfg = current_app.config
    try:
        width = int(data.get("width") or cfg["DEFAULT_TARGET_WIDTH"])
        per_block = int(data.get("lines_per_block") or cfg["DEFAULT_LINES_PER_BLOCK"])
    except (TypeError, ValueError):
        raise InputValidationError("width and lines_per_block must be integers", "width")

    dispatcher = _dispatcher()
    try:
        session = PracticeSession.start(
            _gateway(dispatcher),
            current_user.id,
            text_id,
            target_width=width,
            lines_per_block=per_block,
            min_width=cfg["MIN_TARGET_WIDTH"],
            max_lines_per_block=cfg["MAX_LINES_PER_BLOCK"],
            reward_amount=cfg["LINE_REWARD_COINS"],
            penalty_amount=cfg["PENALTY_COINS"],
            penalty_threshold=cfg["PENALTY_ERROR_THRESHOLD"],
            dispatcher=dispatcher,
            notify=current_app.logger.warning,
        )
    except Exception:
        dispatcher.shutdown(wait=False)
        raise
    sid, evicted = _registry().add(current_user.id, session)
    _close_evicted(evicted)
    current_app.logger.info("Opened session %s for user %s text %s", sid, current_user.id, text_id)
    return jsonify({
        "session_id": sid,
        "tick_ms": cfg["TIMER_TICK_MS"],
        "state": session.snapshot(),
    }), 201


@sessions_bp.route("/sessions/<sid>", methods=["GET"])
@token_required
def get_session(current_user, sid):
    session, lock, evicted = _registry().get(sid, current_user.id)
    _close_evicted(evicted)
    if session is None:
        return _not_found()
    with lock:
        return jsonify({"session_id": sid, "state": session.snapshot()})


@sessions_bp.route("/sessions/<sid>/events", methods=["POST"])
@token_required
def post_event(current_user, sid):
    session, lock, evicted = _registry().get(sid, current_user.id)
    _close_evicted(evicted)
    if session is None:
        return _not_found()
    event = event_from_dict(request.get_json(silent=True) or {})
    with lock:
        step = session.handle(event)
        return jsonify({"session_id": sid, **step.to_dict()})


@sessions_bp.route("/sessions/<sid>", methods=["DELETE"])
@token_required
def close_session(current_user, sid):
    session, lock = _registry().pop(sid, current_user.id)
    if session is None:
        return _not_found()
    with lock:
        step = session.close()
    current_app.logger.info("Closed session %s at index %s", sid, step.state.flat_index)
    return jsonify({"session_id": sid, **step.to_dict()})
