"""Shared data contracts for the detection pipeline."""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Tuple

import numpy as np  # type: ignore


@dataclass(frozen=True)
class ScaleFactors:
    """
    How an image was letterboxed into the detector input.

    x_ratio / y_ratio follow the YOLOv5 convention:
        x_ratio = target_width / (image_width * scale)
        y_ratio = target_height / (image_height * scale)
    so a normalized tensor coordinate maps back to original pixels as
    x_norm * x_ratio * image_width.
    """

    x_ratio: float
    y_ratio: float
    scale: float
    image_width: int
    image_height: int
    target_width: int
    target_height: int


@dataclass(frozen=True)
class PreparedInput:
    """Detector input tensor (H, W, 3) in [0, 1] plus its scale factors."""

    tensor: np.ndarray
    scale_factors: ScaleFactors

    @property
    def x_ratio(self) -> float:
        return self.scale_factors.x_ratio

    @property
    def y_ratio(self) -> float:
        return self.scale_factors.y_ratio

    def __iter__(self) -> Iterator:
        # Allows `tensor, x_ratio, y_ratio = prepare(...)`
        return iter((self.tensor, self.x_ratio, self.y_ratio))


@dataclass(frozen=True)
class RawDetections:
    """
    Raw detector output: N slots of box, score and class index.

    Boxes are (x1, y1, x2, y2) in tensor space; `normalized` tells whether
    they are in [0, 1] units or input-tensor pixels.
    """

    boxes: np.ndarray  # (N, 4)
    scores: np.ndarray  # (N,)
    class_indices: np.ndarray  # (N,)
    normalized: bool = True

    def __len__(self) -> int:
        return int(self.scores.shape[0])


@dataclass(frozen=True)
class LabeledDetection:
    """A single above-threshold detection mapped to original image space."""

    label: str
    score: float
    box: Tuple[float, float, float, float]  # (x1, y1, x2, y2)

    def to_dict(self) -> Dict:
        return {
            "label": self.label,
            "confidence": round(self.score, 4),
            "bbox": [round(v, 2) for v in self.box],
        }


@dataclass(frozen=True)
class DetectionResult:
    """
    Unique ingredient labels from one pipeline run, in first-occurrence
    order of the raw detector output. An empty result means "nothing
    detected" and is not an error.
    """

    labels: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.labels

    def __iter__(self) -> Iterator[str]:
        return iter(self.labels)

    def __len__(self) -> int:
        return len(self.labels)

    def __contains__(self, label: object) -> bool:
        return label in self.labels

    def as_list(self) -> List[str]:
        return list(self.labels)


@dataclass
class PipelineOutcome:
    """Everything one `IngredientPipeline.analyze` call produces."""

    result: DetectionResult
    detections: List[LabeledDetection] = field(default_factory=list)
    timings: Dict[str, float] = field(default_factory=dict)
