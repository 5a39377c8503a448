import logging
import threading
import time
from typing import Optional

import numpy as np  # type: ignore

from ingredient_scanner.config import (
    CONFIDENCE_THRESHOLD,
    DETECTOR_BOX_ORDER,
    LABELS_PATH,
    MODEL_PATH,
)
from ingredient_scanner.errors import DetectionCancelled, ModelLoadError
from .detector import DetectorRuntime, load_detector
from .labels import ClassLabelTable, load_label_table
from .postprocess import extract_detections, extract_labels
from .preprocess import prepare
from .types import PipelineOutcome

logger = logging.getLogger(__name__)


def _ms(seconds: float) -> float:
    return round(seconds * 1000, 2)


class IngredientPipeline:
    """
    Photo -> ingredient labels:

    RGB image
      ↓
    letterbox to detector input (+ scale factors)
      ↓
    detector runtime (opaque)
      ↓
    threshold + label lookup + first-seen dedup
      ↓
    DetectionResult

    Stateless apart from the shared read-only runtime and label table.
    """

    def __init__(
        self,
        runtime: DetectorRuntime,
        label_table: ClassLabelTable,
        threshold: float = CONFIDENCE_THRESHOLD,
    ):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be in [0, 1], got {threshold}")
        self.runtime = runtime
        self.label_table = label_table
        self.threshold = threshold

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event], stage: str):
        if cancel_event is not None and cancel_event.is_set():
            logger.info("[PIPELINE] Detection cancelled before %s", stage)
            raise DetectionCancelled(stage)

    def analyze(
        self,
        image: np.ndarray,
        cancel_event: Optional[threading.Event] = None,
    ) -> PipelineOutcome:
        """
        Run one detection pass over an RGB image.

        Errors from any stage abort the call with nothing returned. If
        `cancel_event` is set while the call is in flight, the result is
        discarded and DetectionCancelled is raised.
        """
        t0 = time.perf_counter()

        self._check_cancelled(cancel_event, "preprocess")
        prepared = prepare(image, self.runtime.input_width, self.runtime.input_height)
        t_prepared = time.perf_counter()

        self._check_cancelled(cancel_event, "inference")
        raw = self.runtime.execute(prepared.tensor)
        t_inferred = time.perf_counter()

        self._check_cancelled(cancel_event, "postprocess")
        result = extract_labels(raw.scores, raw.class_indices, self.threshold, self.label_table)
        detections = extract_detections(raw, prepared, self.threshold, self.label_table)
        t_done = time.perf_counter()

        timings = {
            "preprocess_ms": _ms(t_prepared - t0),
            "inference_ms": _ms(t_inferred - t_prepared),
            "postprocess_ms": _ms(t_done - t_inferred),
            "total_ms": _ms(t_done - t0),
        }

        if result.is_empty:
            logger.info(
                "[PIPELINE] Nothing detected above threshold=%s (%d slots), timings_ms=%s",
                self.threshold,
                len(raw),
                timings,
            )
        else:
            logger.info(
                "[PIPELINE] Detected %s (%d boxes of %d slots), timings_ms=%s",
                result.as_list(),
                len(detections),
                len(raw),
                timings,
            )

        return PipelineOutcome(result=result, detections=detections, timings=timings)


# Singleton so the detector is loaded once and shared by every request
_PIPELINE_SINGLETON: Optional[IngredientPipeline] = None
_PIPELINE_LOAD_ERROR: Optional[ModelLoadError] = None
_PIPELINE_LOCK = threading.Lock()


def _build_pipeline() -> IngredientPipeline:
    runtime = load_detector(MODEL_PATH, box_order=DETECTOR_BOX_ORDER)
    try:
        label_table = load_label_table(LABELS_PATH)
    except (OSError, ValueError) as e:
        raise ModelLoadError(f"Failed to load label table {LABELS_PATH}: {e}") from e
    return IngredientPipeline(runtime, label_table, threshold=CONFIDENCE_THRESHOLD)


def get_pipeline_singleton() -> IngredientPipeline:
    """
    Lazily initialize the pipeline singleton.

    A load failure is remembered and re-raised on every call until
    `reload_pipeline()` is requested explicitly.
    """
    global _PIPELINE_SINGLETON, _PIPELINE_LOAD_ERROR
    with _PIPELINE_LOCK:
        if _PIPELINE_SINGLETON is not None:
            return _PIPELINE_SINGLETON
        if _PIPELINE_LOAD_ERROR is not None:
            raise _PIPELINE_LOAD_ERROR

        try:
            _PIPELINE_SINGLETON = _build_pipeline()
        except ModelLoadError as e:
            logger.error("Failed to initialize pipeline: %s", e)
            _PIPELINE_LOAD_ERROR = e
            raise

        return _PIPELINE_SINGLETON


def reload_pipeline() -> IngredientPipeline:
    """Drop any cached pipeline or load error and load the model again."""
    global _PIPELINE_SINGLETON, _PIPELINE_LOAD_ERROR
    with _PIPELINE_LOCK:
        _PIPELINE_SINGLETON = None
        _PIPELINE_LOAD_ERROR = None
    return get_pipeline_singleton()
