from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional, Union

DEFAULT_CURRENCY_SUFFIX = "Frcs CFA"

# séparateur de milliers fr-FR (espace fine insécable)
THOUSANDS_SEP = "\u202f"

_UNITS = [
    "", "un", "deux", "trois", "quatre", "cinq", "six", "sept", "huit", "neuf",
    "dix", "onze", "douze", "treize", "quatorze", "quinze", "seize",
    "dix-sept", "dix-huit", "dix-neuf",
]
_TENS = [
    "", "", "vingt", "trente", "quarante", "cinquante",
    "soixante", "soixante", "quatre-vingt", "quatre-vingt",
]
_SCALES = [
    (1_000_000_000, "milliard", "milliards"),
    (1_000_000, "million", "millions"),
]


def format_currency(amount: int, suffix: str = DEFAULT_CURRENCY_SUFFIX) -> str:
    """1500 -> '1 500 Frcs CFA' (montants entiers, pas de centimes)."""
    grouped = f"{int(amount):,}".replace(",", THOUSANDS_SEP)
    return f"{grouped} {suffix}" if suffix else grouped


def format_date(value: Union[date, datetime, str]) -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return value.strftime("%d/%m/%Y")


def generate_number(prefix: str, index: int, year: Optional[int] = None) -> str:
    """
    Référence de document : PREFIX-AAAA-00001.
    `index` = nombre de documents existants, le numéro produit est index + 1.
    """
    year = year or date.today().year
    return f"{prefix}-{year}-{index + 1:05d}"


def parse_number_sequence(number: str, prefix: str, year: int) -> Optional[int]:
    """'INV-2024-00012' -> 12 si le préfixe et l'année correspondent, sinon None."""
    head = f"{prefix}-{year}-"
    if not number or not number.upper().startswith(head.upper()):
        return None
    tail = number[len(head):]
    return int(tail) if tail.isdigit() else None


def _below_100(n: int, plural: bool) -> str:
    if n < 20:
        return _UNITS[n]
    t, u = divmod(n, 10)
    if t == 7:
        return "soixante-et-onze" if u == 1 else f"soixante-{_UNITS[10 + u]}"
    if t == 9:
        return f"quatre-vingt-{_UNITS[10 + u]}"
    if t == 8:
        if u == 0:
            return "quatre-vingts" if plural else "quatre-vingt"
        return f"quatre-vingt-{_UNITS[u]}"
    if u == 0:
        return _TENS[t]
    if u == 1:
        return f"{_TENS[t]}-et-un"
    return f"{_TENS[t]}-{_UNITS[u]}"


def _below_1000(n: int, plural: bool = True) -> str:
    # plural=False devant "mille" : "deux cent mille", "quatre-vingt mille"
    h, r = divmod(n, 100)
    if h == 0:
        return _below_100(r, plural)
    head = "cent" if h == 1 else f"{_UNITS[h]} cent"
    if r == 0:
        return head + "s" if h > 1 and plural else head
    return f"{head} {_below_100(r, plural)}"


def _to_words(n: int, plural: bool = True) -> str:
    parts = []
    for value, singular, many in _SCALES:
        q, n = divmod(n, value)
        if q:
            # milliard/million sont des noms : le groupe qui les précède s'accorde
            words = _to_words(q) if q >= 1000 else _below_1000(q)
            parts.append(f"{words} {singular if q == 1 else many}")
    q, n = divmod(n, 1000)
    if q:
        parts.append("mille" if q == 1 else f"{_below_1000(q, plural=False)} mille")
    if n:
        parts.append(_below_1000(n, plural))
    return " ".join(parts)


def number_to_words(amount: int) -> str:
    """Montant en toutes lettres (français), première lettre en majuscule."""
    amount = int(amount)
    if amount < 0:
        raise ValueError("amount must be non-negative")
    if amount == 0:
        return "Zéro"
    text = re.sub(r"\s+", " ", _to_words(amount)).strip()
    return text[0].upper() + text[1:]
