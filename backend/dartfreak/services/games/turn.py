from typing import List, Optional

from .throws import Multiplier, Throw

DARTS_PER_TURN = 3


class TurnAccumulator:
    """Collects up to three darts for the active visit.

    Nothing here touches a player's score; the engine reads ``darts`` and
    ``current_total()`` when the visit is committed.
    """

    def __init__(self):
        self._darts: List[Throw] = []
        self.selected_index: Optional[int] = None

    @property
    def darts(self) -> List[Throw]:
        return list(self._darts)

    @property
    def is_empty(self) -> bool:
        return not self._darts

    @property
    def is_complete(self) -> bool:
        return len(self._darts) == DARTS_PER_TURN

    @property
    def darts_remaining(self) -> int:
        return DARTS_PER_TURN - len(self._darts)

    @property
    def last_dart(self) -> Optional[Throw]:
        return self._darts[-1] if self._darts else None

    def __len__(self):
        return len(self._darts)

    def current_total(self) -> int:
        return sum(d.total_value for d in self._darts)

    def record_throw(self, base_value: int, multiplier: int = Multiplier.SINGLE) -> Optional[Throw]:
        """Append a dart, or replace the selected one in place.

        Returns the recorded throw, or None when the visit is already full and
        no dart is selected.
        """
        dart = Throw(base_value, multiplier)
        return self.record(dart)

    def record(self, dart: Throw) -> Optional[Throw]:
        if self.selected_index is not None and self.selected_index < len(self._darts):
            self._darts[self.selected_index] = dart
            self.selected_index = None
            return dart
        if len(self._darts) >= DARTS_PER_TURN:
            return None
        self._darts.append(dart)
        return dart

    def select_dart(self, index: int) -> Optional[int]:
        if index is None or index < 0 or index >= len(self._darts):
            self.selected_index = None
        elif self.selected_index == index:
            self.selected_index = None
        else:
            self.selected_index = index
        return self.selected_index

    def deselect(self) -> None:
        self.selected_index = None

    def undo(self) -> Optional[Throw]:
        """Remove the selected dart, or the most recent one."""
        if not self._darts:
            return None
        if self.selected_index is not None and self.selected_index < len(self._darts):
            removed = self._darts.pop(self.selected_index)
        else:
            removed = self._darts.pop()
        self.selected_index = None
        return removed

    def clear(self) -> List[Throw]:
        darts, self._darts = self._darts, []
        self.selected_index = None
        return darts

    def restore(self, darts) -> None:
        self._darts = list(darts)[:DARTS_PER_TURN]
        self.selected_index = None
