# typetrainer/models.py
# Users, their texts, per-text progress and the coin ledger.

from __future__ import annotations
from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

# Single global SQLAlchemy instance lives here.
db = SQLAlchemy()

# -----------------------------------------------------------------------------
# Core models
# -----------------------------------------------------------------------------

class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(256), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    name = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Reward balance; never negative
    coins = db.Column(db.Integer, nullable=False, default=0)

    # Cumulative practice statistics (fed one completed line at a time)
    total_practice_seconds = db.Column(db.Float, nullable=False, default=0.0)
    accuracy_sum = db.Column(db.Float, nullable=False, default=0.0)
    lines_completed = db.Column(db.Integer, nullable=False, default=0)
    texts_practiced = db.Column(db.Integer, nullable=False, default=0)

    texts = db.relationship("Text", backref="owner", lazy=True, cascade="all, delete-orphan")
    progress = db.relationship("TextProgress", backref="user", lazy=True, cascade="all, delete-orphan")
    coin_events = db.relationship("CoinEvent", backref="user", lazy=True, cascade="all, delete-orphan")

    @property
    def average_accuracy(self) -> float:
        if not self.lines_completed:
            return 0.0
        return round(self.accuracy_sum / self.lines_completed, 1)

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email}>"


class Text(db.Model):
    __tablename__ = "texts"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False, default="")
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    progress = db.relationship("TextProgress", backref="text", lazy=True, cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Text {self.id} u={self.user_id} {self.title!r}>"


class TextProgress(db.Model):
    __tablename__ = "text_progress"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    text_id = db.Column(db.Integer, db.ForeignKey("texts.id"), index=True, nullable=False)
    # Flat index into the reflowed display lines (next character to type)
    progress_index = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (db.UniqueConstraint("user_id", "text_id", name="uq_text_progress_user_text"),)

    def __repr__(self) -> str:
        return f"<TextProgress u={self.user_id} t={self.text_id} idx={self.progress_index}>"


class CoinEvent(db.Model):
    """Ledger of coin changes; the balance itself lives on User.coins."""
    __tablename__ = "coin_events"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    amount = db.Column(db.Integer, nullable=False)       # +reward / -penalty
    reason = db.Column(db.String(32), nullable=False)    # line | penalty
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def __repr__(self) -> str:
        return f"<CoinEvent u={self.user_id} {self.amount:+d} {self.reason}>"
