from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict

from dartfreak.errors import InvalidThrowInput

BULL = 25
MISS = 0
SEGMENTS = tuple(range(1, 21))


class Multiplier(IntEnum):
    SINGLE = 1
    DOUBLE = 2
    TRIPLE = 3

    @property
    def prefix(self) -> str:
        return {1: '', 2: 'D', 3: 'T'}[self.value]


@dataclass(frozen=True)
class Throw:
    """One dart's scored result.

    A miss is ``Throw(0, SINGLE)``. Double bull is the inner bull (50) and is
    reported through ``is_inner_bull`` rather than as a plain double.
    """
    base_value: int
    multiplier: Multiplier = Multiplier.SINGLE

    def __post_init__(self):
        if isinstance(self.base_value, bool) or not isinstance(self.base_value, int):
            raise InvalidThrowInput(f'base value must be an integer, got {self.base_value!r}')
        try:
            multiplier = Multiplier(self.multiplier)
        except ValueError:
            raise InvalidThrowInput(f'multiplier must be 1, 2 or 3, got {self.multiplier!r}')
        object.__setattr__(self, 'multiplier', multiplier)
        if self.base_value != MISS and self.base_value != BULL and self.base_value not in SEGMENTS:
            raise InvalidThrowInput(f'base value must be 0-20 or 25, got {self.base_value}')
        if self.base_value == MISS and multiplier != Multiplier.SINGLE:
            raise InvalidThrowInput('a miss cannot carry a multiplier')
        if self.base_value == BULL and multiplier == Multiplier.TRIPLE:
            raise InvalidThrowInput('there is no triple bull')

    @property
    def total_value(self) -> int:
        return self.base_value * int(self.multiplier)

    @property
    def is_miss(self) -> bool:
        return self.base_value == MISS

    @property
    def is_inner_bull(self) -> bool:
        return self.base_value == BULL and self.multiplier == Multiplier.DOUBLE

    @property
    def is_double(self) -> bool:
        # Inner bull counts as a double for checkouts
        return self.multiplier == Multiplier.DOUBLE

    @property
    def display_text(self) -> str:
        if self.is_miss:
            return 'Miss'
        if self.is_inner_bull:
            return 'Bull'
        if self.multiplier == Multiplier.SINGLE:
            return str(self.base_value)
        return f'{self.multiplier.prefix}{self.base_value}'

    def __str__(self):
        return self.display_text

    def to_dict(self) -> Dict[str, Any]:
        return {
            'base_value': self.base_value,
            'multiplier': int(self.multiplier),
            'total_value': self.total_value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Throw':
        if not isinstance(data, dict):
            raise InvalidThrowInput(f'dart must be an object, got {data!r}')
        if 'base_value' not in data:
            raise InvalidThrowInput('dart is missing base_value')
        return cls(data['base_value'], data.get('multiplier', 1))

    @classmethod
    def parse(cls, text: str) -> 'Throw':
        """Parse chart notation: ``"T20"``, ``"D16"``, ``"19"``, ``"S5"``, ``"Bull"``, ``"25"``, ``"Miss"``."""
        if not isinstance(text, str) or not text.strip():
            raise InvalidThrowInput(f'cannot parse dart {text!r}')
        token = text.strip().upper()
        if token in ('BULL', 'DB', 'D25', 'BULLSEYE'):
            return cls(BULL, Multiplier.DOUBLE)
        if token in ('SB', 'OB', 'S25', '25'):
            return cls(BULL, Multiplier.SINGLE)
        if token in ('MISS', 'M', '0'):
            return cls(MISS, Multiplier.SINGLE)
        multiplier = Multiplier.SINGLE
        if token[0] in 'SDT':
            multiplier = {'S': Multiplier.SINGLE, 'D': Multiplier.DOUBLE, 'T': Multiplier.TRIPLE}[token[0]]
            token = token[1:]
        if not token.isdigit():
            raise InvalidThrowInput(f'cannot parse dart {text!r}')
        return cls(int(token), multiplier)


def miss() -> Throw:
    return Throw(MISS, Multiplier.SINGLE)


def turn_total(darts) -> int:
    return sum(d.total_value for d in darts)
