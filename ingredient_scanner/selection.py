"""User-side ingredient selection on top of detection results."""

import logging
from typing import Iterable, List, Optional, Set, Tuple

from ingredient_scanner.config import MAX_SELECTED_INGREDIENTS
from ingredient_scanner.errors import SelectionLimitExceeded
from ingredient_scanner.vision_pipeline.types import DetectionResult

logger = logging.getLogger(__name__)


class IngredientSelectionState:
    """
    Two pieces of state the user edits between scans and recipe search:

    - the detection under review and the labels removed from it
    - the selected ingredients accumulated across scans, capped at `limit`

    Passed explicitly to whoever needs it; the pipeline never touches it.
    """

    def __init__(self, limit: int = MAX_SELECTED_INGREDIENTS):
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")
        self.limit = limit
        self._reviewed = DetectionResult()
        self._removed: Set[str] = set()
        self._selected: List[str] = []

    # -------------------------------------------------------------------------
    # Review of the latest detection
    # -------------------------------------------------------------------------
    def review(self, result: DetectionResult):
        """Show a fresh detection; previous removals are forgotten."""
        self._reviewed = result
        self._removed = set()

    @property
    def reviewed(self) -> DetectionResult:
        return self._reviewed

    @property
    def removed(self) -> frozenset:
        return frozenset(self._removed)

    def toggle(self, label: str) -> bool:
        """
        Flip `label` in or out of the removed set.

        Returns True if the label is now kept, False if removed.
        """
        if label not in self._reviewed:
            raise ValueError(f"{label!r} is not part of the reviewed detection")
        if label in self._removed:
            self._removed.discard(label)
            return True
        self._removed.add(label)
        return False

    @property
    def candidates(self) -> Tuple[str, ...]:
        """Reviewed labels minus removed ones, in detection order."""
        return tuple(label for label in self._reviewed if label not in self._removed)

    # -------------------------------------------------------------------------
    # Accumulated selection
    # -------------------------------------------------------------------------
    @property
    def selected(self) -> Tuple[str, ...]:
        return tuple(self._selected)

    def _new_labels(self, labels: Iterable[str]) -> List[str]:
        new: List[str] = []
        for label in labels:
            if label not in self._selected and label not in new:
                new.append(label)
        return new

    def merge(self, result: Optional[DetectionResult] = None) -> Tuple[str, ...]:
        """
        Add detected labels to the selection.

        Without `result` the current candidates are merged; with one, its
        labels minus the removed set. Already selected labels do not count
        twice. If the selection would exceed `limit`, nothing changes and
        SelectionLimitExceeded is raised.
        """
        if result is None:
            labels = self.candidates
        else:
            labels = tuple(label for label in result if label not in self._removed)

        new = self._new_labels(labels)
        requested = len(self._selected) + len(new)
        if requested > self.limit:
            logger.info(
                "Selection limit reached: %d selected + %d new > %d",
                len(self._selected),
                len(new),
                self.limit,
            )
            raise SelectionLimitExceeded(self.limit, requested)

        self._selected.extend(new)
        return tuple(new)

    def add(self, label: str):
        """Select one ingredient picked by hand."""
        if label in self._selected:
            return
        if len(self._selected) >= self.limit:
            raise SelectionLimitExceeded(self.limit, len(self._selected) + 1)
        self._selected.append(label)

    def discard(self, label: str):
        if label in self._selected:
            self._selected.remove(label)

    def clear(self):
        self._reviewed = DetectionResult()
        self._removed = set()
        self._selected = []

    def __len__(self) -> int:
        return len(self._selected)
