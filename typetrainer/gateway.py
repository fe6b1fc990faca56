# typetrainer/gateway.py
"""
Storage boundary for practice sessions.

A session never talks to the database or the network directly. It holds a
PersistenceGateway and calls the six operations below. Everything except
load_text answers with a success flag; load_text raises TextNotFound.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Optional, Union

import requests
from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from .errors import PersistenceFailure, TextNotFound
from .models import db, CoinEvent, Text, TextProgress, User

log = logging.getLogger(__name__)

# decrement_reward answer when the balance was already empty
ALREADY_ZERO = "already_zero"


@dataclass(frozen=True)
class LoadedText:
    content: str
    progress_index: int = 0
    coins: int = 0


class PersistenceGateway(ABC):
    @abstractmethod
    def load_text(self, text_id: int, user_id: int) -> LoadedText: ...

    @abstractmethod
    def save_progress(self, user_id: int, text_id: int, flat_index: int) -> bool: ...

    @abstractmethod
    def record_line_completion(self, user_id: int, line_time_seconds: float, line_accuracy: float) -> bool: ...

    @abstractmethod
    def increment_reward(self, user_id: int, amount: int) -> bool: ...

    @abstractmethod
    def decrement_reward(self, user_id: int, amount: int) -> Union[bool, str]: ...

    @abstractmethod
    def record_text_completion(self, user_id: int, text_id: int) -> bool: ...


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

def safe_commit():
    """Commit once; on DB disconnect/idle-ssl errors, rollback and retry once."""
    try:
        db.session.commit()
    except OperationalError as e:
        db.session.rollback()
        _logger().warning("Commit failed (retrying once): %s", e)
        try:
            db.session.commit()
        except Exception as e2:
            db.session.rollback()
            raise e2


def _logger():
    return current_app.logger if has_app_context() else log


class SqlGateway(PersistenceGateway):
    """
    Gateway over the Flask-SQLAlchemy models.

    Pass `app` when calls may run outside a request (worker threads); each call
    then pushes its own app context.
    """

    def __init__(self, app=None):
        self.app = app

    def _ctx(self):
        return self.app.app_context() if self.app is not None else nullcontext()

    def _write(self, what: str, fn) -> bool:
        with self._ctx():
            try:
                fn()
                safe_commit()
                return True
            except SQLAlchemyError as e:
                db.session.rollback()
                _logger().warning("%s failed: %s", what, e)
                return False

    def load_text(self, text_id, user_id):
        with self._ctx():
            text = Text.query.filter_by(id=text_id, user_id=user_id).first()
            if text is None:
                raise TextNotFound(text_id, user_id)
            prog = TextProgress.query.filter_by(user_id=user_id, text_id=text_id).first()
            user = db.session.get(User, user_id)
            return LoadedText(
                content=text.content or "",
                progress_index=prog.progress_index if prog else 0,
                coins=(user.coins or 0) if user else 0,
            )

    def save_progress(self, user_id, text_id, flat_index):
        def _do():
            prog = TextProgress.query.filter_by(user_id=user_id, text_id=text_id).first()
            if prog is None:
                prog = TextProgress(user_id=user_id, text_id=text_id)
                db.session.add(prog)
            prog.progress_index = max(0, int(flat_index))
        return self._write("save_progress", _do)

    def record_line_completion(self, user_id, line_time_seconds, line_accuracy):
        def _do():
            user = db.session.get(User, user_id)
            if user is None:
                raise PersistenceFailure(f"user {user_id} not found")
            user.total_practice_seconds = (user.total_practice_seconds or 0.0) + float(line_time_seconds)
            user.accuracy_sum = (user.accuracy_sum or 0.0) + float(line_accuracy)
            user.lines_completed = (user.lines_completed or 0) + 1
        return self._guarded("record_line_completion", _do)

    def increment_reward(self, user_id, amount):
        def _do():
            user = db.session.get(User, user_id)
            if user is None:
                raise PersistenceFailure(f"user {user_id} not found")
            user.coins = (user.coins or 0) + int(amount)
            db.session.add(CoinEvent(user_id=user_id, amount=int(amount), reason="line"))
        return self._guarded("increment_reward", _do)

    def decrement_reward(self, user_id, amount):
        with self._ctx():
            user = db.session.get(User, user_id)
            if user is None:
                _logger().warning("decrement_reward: user %s not found", user_id)
                return False
            if (user.coins or 0) <= 0:
                return ALREADY_ZERO
            taken = min(int(amount), user.coins)
            user.coins -= taken
            db.session.add(CoinEvent(user_id=user_id, amount=-taken, reason="penalty"))
            try:
                safe_commit()
            except SQLAlchemyError as e:
                db.session.rollback()
                _logger().warning("decrement_reward failed: %s", e)
                return False
            return True

    def record_text_completion(self, user_id, text_id):
        def _do():
            user = db.session.get(User, user_id)
            if user is None:
                raise PersistenceFailure(f"user {user_id} not found")
            user.texts_practiced = (user.texts_practiced or 0) + 1
        return self._guarded("record_text_completion", _do)

    def _guarded(self, what, fn) -> bool:
        try:
            return self._write(what, fn)
        except PersistenceFailure as e:
            _logger().warning("%s failed: %s", what, e)
            return False


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

class HttpGateway(PersistenceGateway):
    """
    Gateway over the practice JSON API, for hosts that run the engine away from
    the database. The bearer token identifies the user, so user_id is only
    used for logging.
    """

    def __init__(self, base_url: str, token: str, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()
        self.http.headers.update({"Authorization": f"Bearer {token}"})

    def _post(self, path: str, payload: dict) -> Optional[requests.Response]:
        try:
            return self.http.post(f"{self.base_url}{path}", json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            log.warning("POST %s failed: %s", path, e)
            return None

    def _ok(self, path: str, payload: dict) -> bool:
        r = self._post(path, payload)
        if r is None:
            return False
        if not r.ok:
            log.warning("POST %s -> %s", path, r.status_code)
            return False
        return True

    def load_text(self, text_id, user_id):
        url = f"{self.base_url}/api/practice/{int(text_id)}"
        try:
            r = self.http.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise PersistenceFailure(f"load_text failed: {e}") from e
        if r.status_code == 404:
            raise TextNotFound(text_id, user_id)
        if not r.ok:
            raise PersistenceFailure(f"load_text failed: HTTP {r.status_code}")
        try:
            data = r.json()
            return LoadedText(
                content=data.get("content") or "",
                progress_index=int(data.get("progress_index") or 0),
                coins=int(data.get("coins") or 0),
            )
        except (ValueError, TypeError, AttributeError) as e:
            raise PersistenceFailure(f"load_text failed: bad response body ({e})") from e

    def save_progress(self, user_id, text_id, flat_index):
        return self._ok("/api/practice/progress", {"text_id": text_id, "progress_index": flat_index})

    def record_line_completion(self, user_id, line_time_seconds, line_accuracy):
        return self._ok(
            "/api/practice/line-complete",
            {"line_time_seconds": line_time_seconds, "line_accuracy": line_accuracy},
        )

    def increment_reward(self, user_id, amount):
        return self._ok("/api/practice/reward", {"amount": amount})

    def decrement_reward(self, user_id, amount):
        r = self._post("/api/practice/penalty", {"amount": amount})
        if r is None:
            return False
        if r.ok:
            return True
        if r.status_code == 400:
            try:
                body = r.json()
            except ValueError:
                body = {}
            if body.get("currentCoinCount") == 0:
                return ALREADY_ZERO
        log.warning("penalty -> %s", r.status_code)
        return False

    def record_text_completion(self, user_id, text_id):
        return self._ok("/api/practice/complete", {"text_id": text_id})
