#typetrainer/profile_stats.py
from __future__ import annotations
from datetime import datetime, timedelta, date
from sqlalchemy import func
from .models import db, CoinEvent, User

# CoinEvent timestamps are naive UTC, so "today" is the UTC date too.
def _today() -> date:
    return datetime.utcnow().date()

def _start_of_week(d: date) -> datetime:
    # ISO week (Mon 00:00)
    return datetime(d.year, d.month, d.day) - timedelta(days=d.weekday())

def compute_weekly_coins(user_id: int, ref: date | None = None) -> int:
    """Coins earned this week; penalties are not subtracted."""
    ref = ref or _today()
    start = _start_of_week(ref)
    end   = start + timedelta(days=7)
    q = db.session.query(func.coalesce(func.sum(CoinEvent.amount), 0))\
        .filter(CoinEvent.user_id == user_id,
                CoinEvent.amount > 0,
                CoinEvent.created_at >= start,
                CoinEvent.created_at <  end)
    return int(q.scalar() or 0)

def compute_streak(user_id: int, ref: date | None = None) -> tuple[int, int]:
    """
    Return (current_streak_days, longest_streak_days).
    A 'day' counts if at least one line was completed that day.
    """
    since = datetime.utcnow() - timedelta(days=365)
    rows = db.session.query(CoinEvent.created_at)\
        .filter(CoinEvent.user_id == user_id,
                CoinEvent.reason == "line",
                CoinEvent.created_at >= since)\
        .order_by(CoinEvent.created_at.desc()).all()
    days = set(r.created_at.date() for r in rows)

    # Current streak (ending today)
    cur = 0
    d = ref or _today()
    while d in days:
        cur += 1
        d = d - timedelta(days=1)

    # Longest streak (scan)
    longest = 0
    if days:
        sorted_days = sorted(days)
        run = 1
        for i in range(1, len(sorted_days)):
            if (sorted_days[i] - sorted_days[i-1]).days == 1:
                run += 1
            else:
                longest = max(longest, run)
                run = 1
        longest = max(longest, run)
    return cur, longest

def build_stats_payload(user: User) -> dict:
    cur, best = compute_streak(user.id)
    return {
        "user_id": user.id,
        "display_name": user.name or user.email.split("@")[0],
        "coins": user.coins,
        "weekly_coins": compute_weekly_coins(user.id),
        "streak_days": cur,
        "longest_streak": best,
        "total_practice_seconds": round(user.total_practice_seconds or 0.0, 1),
        "average_accuracy": user.average_accuracy,
        "lines_completed": user.lines_completed,
        "texts_practiced": user.texts_practiced,
    }
