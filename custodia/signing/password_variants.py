"""Ordered password variants tried when unlocking a certificate container for signing.

Containers uploaded through older clients were sometimes registered with a password that differs from the
one that actually unlocks them, typically by surrounding whitespace or letter case. The legacy strategy
tries these variants in a fixed order, the strict strategy only tries the password as stored.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

__all__ = [
    'LEGACY_PASSWORD_VARIANTS',
    'STRICT_PASSWORD_VARIANTS',
    'PasswordVariant',
    'get_password_variants',
    'iter_password_candidates',
]


@dataclass(frozen=True)
class PasswordVariant:
    """A named transformation of the stored password."""

    name: str
    transform: Callable[[str], str]


ORIGINAL = PasswordVariant('original', lambda password: password)
TRIMMED = PasswordVariant('trimmed', str.strip)
LOWERCASED = PasswordVariant('lowercased', str.lower)
UPPERCASED = PasswordVariant('uppercased', str.upper)
# Known compatibility risk: unlocks containers that were exported without any password.
EMPTY = PasswordVariant('empty', lambda _password: '')

LEGACY_PASSWORD_VARIANTS: tuple[PasswordVariant, ...] = (ORIGINAL, TRIMMED, LOWERCASED, UPPERCASED, EMPTY)
STRICT_PASSWORD_VARIANTS: tuple[PasswordVariant, ...] = (ORIGINAL,)

_STRATEGIES = {
    'legacy': LEGACY_PASSWORD_VARIANTS,
    'strict': STRICT_PASSWORD_VARIANTS,
}


def get_password_variants(strategy: str | None = None) -> tuple[PasswordVariant, ...]:
    """Returns the variants of the named strategy, by default the one configured in CUSTODIA_PASSWORD_VARIANTS."""
    strategy = strategy or getattr(settings, 'CUSTODIA_PASSWORD_VARIANTS', 'legacy')
    try:
        return _STRATEGIES[strategy]
    except KeyError as exception:
        err_msg = f'Unknown password variant strategy: {strategy}.'
        raise ImproperlyConfigured(err_msg) from exception


def iter_password_candidates(
    password: str, variants: tuple[PasswordVariant, ...] = LEGACY_PASSWORD_VARIANTS
) -> Iterator[tuple[str, str]]:
    """Yields (variant name, candidate) pairs in order. A candidate already yielded is skipped."""
    seen: set[str] = set()
    for variant in variants:
        candidate = variant.transform(password)
        if candidate in seen:
            continue
        seen.add(candidate)
        yield variant.name, candidate
