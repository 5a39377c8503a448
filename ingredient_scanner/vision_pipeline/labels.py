import json
import logging
import os
from typing import Dict, Iterable, Optional, Tuple

from ingredient_scanner.errors import UnknownClassError

logger = logging.getLogger(__name__)

# Training label order of the bundled detector.
DEFAULT_LABELS: Tuple[str, ...] = ("apple", "banana", "orange", "broccoli", "carrot")


class ClassLabelTable:
    """
    Fixed, ordered mapping from detector class index to ingredient name.

    Built once at startup and shared read-only. Indices may be sparse when
    loaded from a `{"index": "name"}` JSON object.
    """

    def __init__(self, labels: Dict[int, str]):
        cleaned: Dict[int, str] = {}
        for index, name in labels.items():
            index = int(index)
            if index < 0:
                raise ValueError(f"Negative class index in label table: {index}")
            name = str(name).strip()
            if not name:
                raise ValueError(f"Empty label for class index {index}")
            cleaned[index] = name
        self._labels = dict(sorted(cleaned.items()))

    @classmethod
    def from_sequence(cls, names: Iterable[str]) -> "ClassLabelTable":
        return cls({i: name for i, name in enumerate(names)})

    @classmethod
    def default(cls) -> "ClassLabelTable":
        return cls.from_sequence(DEFAULT_LABELS)

    @classmethod
    def from_json(cls, path: str) -> "ClassLabelTable":
        """
        Load a label table from JSON.

        Accepts either a list (`["apple", "banana"]`) or an object keyed by
        class index (`{"0": "apple", "1": "banana"}`).
        """
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        if isinstance(data, list):
            table = cls.from_sequence(data)
        elif isinstance(data, dict):
            table = cls({int(k): v for k, v in data.items()})
        else:
            raise ValueError(f"Unsupported label table format in {path}")

        logger.info("Loaded %d labels from %s", len(table), path)
        return table

    def resolve(self, class_index: int) -> str:
        """Return the label for `class_index` or raise UnknownClassError."""
        try:
            return self._labels[int(class_index)]
        except KeyError:
            raise UnknownClassError(int(class_index), len(self._labels)) from None

    def get(self, class_index: int) -> Optional[str]:
        return self._labels.get(int(class_index))

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._labels.values())

    def __len__(self) -> int:
        return len(self._labels)

    def __contains__(self, class_index: object) -> bool:
        return class_index in self._labels

    def __repr__(self) -> str:
        return f"ClassLabelTable({self._labels!r})"


def load_label_table(path: Optional[str] = None) -> ClassLabelTable:
    """Load the label table at `path`, falling back to the built-in table."""
    if path and os.path.exists(path):
        return ClassLabelTable.from_json(path)

    logger.warning(
        "Label table not found at %s. Using built-in labels: %s",
        path,
        ", ".join(DEFAULT_LABELS),
    )
    return ClassLabelTable.default()
