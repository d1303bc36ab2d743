"""Checkout suggestions for double-out countdown games.

Scores on the preferred chart get the chart route as written. Anything the
chart does not cover, or a chart route needing more darts than are left,
falls back to a search: the shortest route that ends on a double (or the
inner bull), trying finishing doubles in the order players usually leave
themselves and setting up with the heaviest trebles first.
"""
from functools import lru_cache
from typing import List, Optional, Tuple

from .throws import BULL, Multiplier, Throw

MAX_CHECKOUT = 170
MIN_CHECKOUT = 2
BOGEY_NUMBERS = frozenset({159, 162, 163, 165, 166, 168, 169})
ROUTE_SEPARATOR = ' → '

_FINISH_ORDER = (20, 16, 18, 12, 8, 10, 14, 6, 4, 2, 19, 17, 15, 13, 11, 9, 7, 5, 3, 1)

# Standard preferred chart. 99 is left to the search.
PREFERRED_CHECKOUTS = {
    2: 'D1', 4: 'D2', 6: 'D3', 8: 'D4', 10: 'D5',
    12: 'D6', 14: 'D7', 16: 'D8', 18: 'D9', 20: 'D10',
    22: 'D11', 24: 'D12', 26: 'D13', 28: 'D14', 30: 'D15',
    32: 'D16', 34: 'D17', 36: 'D18', 38: 'D19', 40: 'D20',

    3: '1 → D1', 5: '1 → D2', 7: '3 → D2', 9: '1 → D4', 11: '3 → D4',
    13: '5 → D4', 15: '7 → D4', 17: '9 → D4', 19: '3 → D8', 21: '5 → D8',
    23: '7 → D8', 25: '9 → D8', 27: '11 → D8', 29: '13 → D8', 31: '15 → D8',
    33: '17 → D8', 35: '3 → D16', 37: '5 → D16', 39: '7 → D16',

    41: '9 → D16', 42: '10 → D16', 43: '11 → D16', 44: '12 → D16', 45: '13 → D16',
    46: '6 → D20', 47: '15 → D16', 48: '16 → D16', 49: '17 → D16', 50: 'Bull',
    51: '19 → D16', 52: '20 → D16', 53: '13 → D20', 54: '14 → D20', 55: '15 → D20',
    56: '16 → D20', 57: '17 → D20', 58: '18 → D20', 59: '19 → D20', 60: '20 → D20',

    61: 'T15 → D8', 62: 'T10 → D16', 63: 'T13 → D12', 64: 'T16 → D8', 65: 'T11 → D16',
    66: 'T10 → D18', 67: 'T17 → D8', 68: 'T20 → D4', 69: 'T19 → D6', 70: 'T18 → D8',
    71: 'T13 → D16', 72: 'T16 → D12', 73: 'T19 → D8', 74: 'T14 → D16', 75: 'T17 → D12',
    76: 'T20 → D8', 77: 'T15 → D16', 78: 'T18 → D12', 79: 'T13 → D20', 80: 'T20 → D10',

    81: 'T19 → D12', 82: 'Bull → D16', 83: 'T17 → D16', 84: 'T20 → D12', 85: 'T15 → D20',
    86: 'T18 → D16', 87: 'T17 → D18', 88: 'T16 → D20', 89: 'T19 → D16', 90: 'T18 → D18',
    91: 'T17 → D20', 92: 'T20 → D16', 93: 'T19 → D18', 94: 'T18 → D20', 95: 'T19 → D19',
    96: 'T20 → D18', 97: 'T19 → D20', 98: 'T20 → D19', 100: 'T20 → D20',

    101: 'T17 → 10 → D20', 102: 'T20 → 10 → D16', 103: 'T19 → 10 → D18', 104: 'T18 → 10 → D20',
    105: 'T20 → 13 → D16', 106: 'T20 → 14 → D16', 107: 'T19 → Bull', 108: 'T20 → 16 → D16',
    109: 'T20 → 17 → D16', 110: 'T20 → Bull', 111: 'T20 → 19 → D16', 112: 'T20 → 20 → D16',
    113: 'T20 → 13 → D20', 114: 'T20 → 14 → D20', 115: 'T20 → 15 → D20', 116: 'T20 → 16 → D20',
    117: 'T20 → 17 → D20', 118: 'T20 → 18 → D20', 119: 'T20 → 19 → D20', 120: 'T20 → 20 → D20',

    121: 'T20 → T11 → D14', 122: 'T18 → T18 → D7', 123: 'T19 → T16 → D9', 124: 'T20 → T16 → D8',
    125: 'T20 → T15 → D10', 126: 'T19 → T19 → D6', 127: 'T20 → T17 → D8', 128: 'T18 → T14 → D16',
    129: 'T19 → T16 → D12', 130: 'T20 → T18 → D8', 131: 'T20 → T13 → D16', 132: 'T20 → T16 → D12',
    133: 'T20 → T19 → D8', 134: 'T20 → T14 → D16', 135: 'T20 → T17 → D12', 136: 'T20 → T20 → D8',
    137: 'T20 → T15 → D16', 138: 'T20 → T18 → D12', 139: 'T20 → T13 → D20', 140: 'T20 → T20 → D10',

    141: 'T20 → T19 → D12', 142: 'T20 → T14 → D20', 143: 'T20 → T17 → D16', 144: 'T20 → T20 → D12',
    145: 'T20 → T15 → D20', 146: 'T20 → T18 → D16', 147: 'T20 → T17 → D18', 148: 'T20 → T16 → D20',
    149: 'T20 → T19 → D16', 150: 'T20 → T18 → D18', 151: 'T20 → T17 → D20', 152: 'T20 → T20 → D16',
    153: 'T20 → T19 → D18', 154: 'T20 → T18 → D20', 155: 'T20 → T19 → D19', 156: 'T20 → T20 → D18',
    157: 'T20 → T19 → D20', 158: 'T20 → T20 → D19', 160: 'T20 → T20 → D20',

    161: 'T20 → T17 → Bull', 164: 'T20 → T18 → Bull', 167: 'T20 → T19 → Bull', 170: 'T20 → T20 → Bull',
}


def _finishing_darts() -> Tuple[Throw, ...]:
    darts = [Throw(n, Multiplier.DOUBLE) for n in _FINISH_ORDER]
    darts.append(Throw(BULL, Multiplier.DOUBLE))
    return tuple(darts)


def _setup_darts() -> Tuple[Throw, ...]:
    trebles = [Throw(n, Multiplier.TRIPLE) for n in range(20, 0, -1)]
    bulls = [Throw(BULL, Multiplier.DOUBLE), Throw(BULL, Multiplier.SINGLE)]
    singles = [Throw(n, Multiplier.SINGLE) for n in range(20, 0, -1)]
    doubles = [Throw(n, Multiplier.DOUBLE) for n in range(20, 0, -1)]
    return tuple(trebles + bulls + singles + doubles)


FINISHING_DARTS = _finishing_darts()
SETUP_DARTS = _setup_darts()


def _single_dart_for(points: int) -> Optional[Throw]:
    """Cheapest single dart worth exactly ``points``: single, then treble, then double."""
    if 1 <= points <= 20 or points == BULL:
        return Throw(points, Multiplier.SINGLE)
    if points % 3 == 0 and 1 <= points // 3 <= 20:
        return Throw(points // 3, Multiplier.TRIPLE)
    if points % 2 == 0 and 1 <= points // 2 <= 20:
        return Throw(points // 2, Multiplier.DOUBLE)
    if points == 2 * BULL:
        return Throw(BULL, Multiplier.DOUBLE)
    return None


def _one_dart(score: int) -> Optional[Tuple[Throw, ...]]:
    for finish in FINISHING_DARTS:
        if finish.total_value == score:
            return (finish,)
    return None


def _two_darts(score: int) -> Optional[Tuple[Throw, ...]]:
    for finish in FINISHING_DARTS:
        setup = _single_dart_for(score - finish.total_value)
        if setup is not None:
            return (setup, finish)
    return None


def _three_darts(score: int) -> Optional[Tuple[Throw, ...]]:
    for first in SETUP_DARTS:
        rest = score - first.total_value
        if rest < MIN_CHECKOUT:
            continue
        route = _two_darts(rest)
        if route is not None:
            return (first,) + route
    return None


@lru_cache(maxsize=None)
def chart_route(score: int) -> Optional[Tuple[Throw, ...]]:
    text = PREFERRED_CHECKOUTS.get(score)
    if text is None:
        return None
    return tuple(Throw.parse(dart) for dart in text.split(ROUTE_SEPARATOR))


@lru_cache(maxsize=None)
def search_route(score: int) -> Optional[Tuple[Throw, ...]]:
    """Shortest double-out route for ``score`` found by search, or None."""
    if score < MIN_CHECKOUT or score > MAX_CHECKOUT or score in BOGEY_NUMBERS:
        return None
    return _one_dart(score) or _two_darts(score) or _three_darts(score)


def checkout_route(score: int, darts_available: int = 3) -> Optional[Tuple[Throw, ...]]:
    """Route for ``score`` as Throw objects: the chart first, then the search."""
    if score < MIN_CHECKOUT or score > MAX_CHECKOUT or score in BOGEY_NUMBERS:
        return None
    for route in (chart_route(score), search_route(score)):
        if route is not None and len(route) <= darts_available:
            return route
    return None


def suggest_checkout(score: int, darts_available: int = 3) -> Optional[List[str]]:
    """Suggest a finish such as ``['T20', 'T20', 'Bull']``.

    Returns None when the score cannot be checked out with the darts left.
    """
    route = checkout_route(score, darts_available)
    if route is None:
        return None
    return [dart.display_text for dart in route]


def format_checkout(route: Optional[List[str]]) -> Optional[str]:
    if not route:
        return None
    return ROUTE_SEPARATOR.join(route)


def is_checkout_reachable(score: int, darts_available: int = 3) -> bool:
    return suggest_checkout(score, darts_available) is not None
