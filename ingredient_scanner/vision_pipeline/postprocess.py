import logging
from typing import List, Optional, Sequence

import numpy as np  # type: ignore

from .labels import ClassLabelTable
from .preprocess import to_original_box
from .types import DetectionResult, LabeledDetection, PreparedInput, RawDetections

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.25


def _check_inputs(scores: Sequence[float], class_indices: Sequence[int], threshold: float):
    if len(scores) != len(class_indices):
        raise ValueError(
            f"scores and class_indices differ in length: {len(scores)} != {len(class_indices)}"
        )
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"threshold must be in [0, 1], got {threshold}")


def _above_threshold(scores: Sequence[float], threshold: float) -> np.ndarray:
    """
    Boolean mask of slots with `score >= threshold`.

    The threshold is cast to the scores' own float precision so a float32
    score equal to the threshold is kept. NaN scores never pass.
    """
    arr = np.asarray(scores)
    if not np.issubdtype(arr.dtype, np.floating):
        arr = arr.astype(np.float64)
    return arr >= arr.dtype.type(threshold)


def extract_labels(
    scores: Sequence[float],
    class_indices: Sequence[int],
    threshold: float = DEFAULT_THRESHOLD,
    label_table: Optional[ClassLabelTable] = None,
) -> DetectionResult:
    """
    Turn raw detector slots into unique ingredient labels.

    Slots are visited in output order. A slot counts when
    `score >= threshold`; its class index is resolved through the label
    table (UnknownClassError on a missing entry) and the label is kept only
    the first time it is seen.
    """
    if label_table is None:
        label_table = ClassLabelTable.default()
    _check_inputs(scores, class_indices, threshold)

    seen = set()
    labels: List[str] = []
    keep = _above_threshold(scores, threshold)
    for passed, class_index in zip(keep, class_indices):
        if not passed:
            continue
        label = label_table.resolve(int(class_index))
        if label in seen:
            continue
        seen.add(label)
        labels.append(label)

    return DetectionResult(labels=tuple(labels))


def extract_detections(
    raw: RawDetections,
    prepared: PreparedInput,
    threshold: float = DEFAULT_THRESHOLD,
    label_table: Optional[ClassLabelTable] = None,
) -> List[LabeledDetection]:
    """
    Every above-threshold slot with its box mapped to original image pixels.

    Unlike `extract_labels` nothing is deduplicated here.
    """
    if label_table is None:
        label_table = ClassLabelTable.default()
    _check_inputs(raw.scores, raw.class_indices, threshold)

    detections: List[LabeledDetection] = []
    keep = _above_threshold(raw.scores, threshold)
    for passed, box, score, class_index in zip(keep, raw.boxes, raw.scores, raw.class_indices):
        if not passed:
            continue
        detections.append(
            LabeledDetection(
                label=label_table.resolve(int(class_index)),
                score=float(score),
                box=to_original_box(box, prepared.scale_factors, normalized=raw.normalized),
            )
        )
    return detections
