# typetrainer/textprep.py
"""
Cleanup for stored practice texts.

PDF-to-text tools often emit an accent as its own spacing character next to
the letter ("e ´" or "´ e"). We fold those back into precomposed letters,
NFC-normalize, and unify apostrophes so the text can actually be typed.
"""
from __future__ import annotations

import re
import unicodedata

_ACUTE = r"[\u00B4\u0301]"
_GRAVE = r"[`\u0300]"
_CIRCUMFLEX = r"[\^\u0302]"
_CEDILLA = r"[\u00B8\u0327]"
_DIAERESIS = r"[\u00A8\u0308]"

# accent [space] letter
_ACCENT_FIRST = [
    (_ACUTE, "e", "é"),
    (_GRAVE, "a", "à"),
    (_GRAVE, "e", "è"),
    (_GRAVE, "u", "ù"),
    (_CIRCUMFLEX, "a", "â"),
    (_CIRCUMFLEX, "e", "ê"),
    (_CIRCUMFLEX, "i", "î"),
    (_CIRCUMFLEX, "o", "ô"),
    (_CIRCUMFLEX, "u", "û"),
    (_CEDILLA, "c", "ç"),
    (_DIAERESIS, "e", "ë"),
    (_DIAERESIS, "i", "ï"),
    (_DIAERESIS, "u", "ü"),
]

# letter [space] accent
_LETTER_FIRST = [
    ("a", _GRAVE, "à"),
    ("a", _CIRCUMFLEX, "â"),
    ("c", _CEDILLA, "ç"),
    ("e", _ACUTE, "é"),
    ("e", _GRAVE, "è"),
    ("e", _CIRCUMFLEX, "ê"),
    ("e", _DIAERESIS, "ë"),
    ("i", _CIRCUMFLEX, "î"),
    ("i", _DIAERESIS, "ï"),
    ("o", _CIRCUMFLEX, "ô"),
    ("u", _GRAVE, "ù"),
    ("u", _CIRCUMFLEX, "û"),
    ("u", _DIAERESIS, "ü"),
]

_RULES = (
    [(re.compile(f"{accent}[ \t]*{letter}", re.I), out) for accent, letter, out in _ACCENT_FIRST]
    + [(re.compile(f"{letter}[ \t]*{accent}", re.I), out) for letter, accent, out in _LETTER_FIRST]
)

_APOSTROPHES = re.compile(r"[\u2019\u00B4'`]")


def cleanup_text(text: str | None) -> str:
    if not text:
        return ""
    cleaned = text
    for pattern, replacement in _RULES:
        cleaned = pattern.sub(replacement, cleaned)
    cleaned = unicodedata.normalize("NFC", cleaned)
    cleaned = _APOSTROPHES.sub("'", cleaned)
    return cleaned.strip()
