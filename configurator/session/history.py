"""Bounded undo/redo over immutable zone-tree snapshots."""

from __future__ import annotations

from collections import deque
from typing import Optional

from typing_extensions import Literal

from configurator.config import DEFAULT_HISTORY_MAX
from configurator.schema import Zone

HistoryAction = Literal["undo", "redo"]


class ZoneHistory:
    def __init__(self, initial: Zone, max_depth: int = DEFAULT_HISTORY_MAX) -> None:
        self._max_depth = max(1, int(max_depth))
        self._past: deque[Zone] = deque(maxlen=self._max_depth)
        self._future: list[Zone] = []
        self._present = initial

    @property
    def present(self) -> Zone:
        return self._present

    @property
    def max_depth(self) -> int:
        return self._max_depth

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    def commit(self, tree: Zone) -> bool:
        """Record a new present; identical trees are not recorded."""
        if tree == self._present:
            return False
        # deque(maxlen) drops the oldest snapshot once full.
        self._past.append(self._present)
        self._present = tree
        self._future.clear()
        return True

    def undo(self) -> Optional[Zone]:
        if not self._past:
            return None
        self._future.append(self._present)
        self._present = self._past.pop()
        return self._present

    def redo(self) -> Optional[Zone]:
        if not self._future:
            return None
        self._past.append(self._present)
        self._present = self._future.pop()
        return self._present

    def reset(self, tree: Zone) -> None:
        self._past.clear()
        self._future.clear()
        self._present = tree


def history_action_for_key(
    key: str,
    *,
    ctrl: bool = False,
    meta: bool = False,
    shift: bool = False,
    in_text_field: bool = False,
) -> Optional[HistoryAction]:
    """Map a key chord to "undo" / "redo" (Ctrl or Cmd based), or None."""
    if in_text_field or not (ctrl or meta):
        return None
    normalized = str(key or "").lower()
    if normalized == "z":
        return "redo" if shift else "undo"
    if normalized == "y":
        return "redo"
    return None
