import logging
import os
import threading
from typing import List, Optional, Protocol

import numpy as np  # type: ignore
import onnxruntime as ort  # type: ignore

from ingredient_scanner.errors import InferenceError, ModelLoadError
from .types import RawDetections

logger = logging.getLogger(__name__)

# TF.js YOLOv5 exports emit (y1, x1, y2, x2); most ONNX exports emit (x1, y1, x2, y2)
BOX_ORDERS = ("xyxy", "yxyx")


class DetectorRuntime(Protocol):
    """
    Capability interface for the opaque detector.

    `execute` takes one (H, W, 3) float tensor in [0, 1] and returns N raw
    slots, where N is fixed by the loaded model.
    """

    input_width: int
    input_height: int
    max_detections: Optional[int]

    def execute(self, tensor: np.ndarray) -> RawDetections:
        ...


def _static_slot_count(model_outputs) -> Optional[int]:
    """
    Fixed detection count N read from the declared output shapes.

    Scores are (1, N) in multi-output exports; the fused output is (1, N, 6).
    Returns None when the dimension is symbolic.
    """
    if not model_outputs:
        return None
    if len(model_outputs) >= 3:
        shape = list(model_outputs[1].shape or [])
        n = shape[-1] if shape else None
    else:
        shape = list(model_outputs[0].shape or [])
        n = shape[-2] if len(shape) >= 2 else None
    return n if isinstance(n, int) else None


class OnnxDetectorRuntime:
    """
    YOLOv5-style ONNX detector wrapper.

    Supports both common export layouts:
    - 3 or 4 outputs: boxes (1, N, 4), scores (1, N), classes (1, N)[, valid]
    - 1 output (1, N, 6): [x1, y1, x2, y2, score, cls]

    Input may be NHWC (TF.js-style export) or NCHW (PyTorch-style export).
    """

    def __init__(
        self,
        session: ort.InferenceSession,
        model_path: str = "<memory>",
        box_order: str = "xyxy",
    ):
        if box_order not in BOX_ORDERS:
            raise ModelLoadError(f"Unknown box order {box_order!r}, expected one of {BOX_ORDERS}")
        self.model_path = model_path
        self.session = session
        self.box_order = box_order

        # Cache input / output names for faster calls
        model_input = self.session.get_inputs()[0]
        self.input_name = model_input.name
        self.output_names: List[str] = [o.name for o in self.session.get_outputs()]

        shape = list(model_input.shape)
        if len(shape) != 4:
            raise ModelLoadError(f"Expected 4-D detector input, got shape {shape}")

        # Channel axis tells the layout: (1, 3, H, W) vs (1, H, W, 3)
        if shape[1] == 3:
            self.channels_first = True
            height, width = shape[2], shape[3]
        elif shape[3] == 3:
            self.channels_first = False
            height, width = shape[1], shape[2]
        else:
            raise ModelLoadError(f"Cannot find channel axis in input shape {shape}")

        if not isinstance(height, int) or not isinstance(width, int):
            raise ModelLoadError(f"Detector input must have fixed spatial size, got {shape}")

        self.input_height = height
        self.input_width = width
        self.max_detections = _static_slot_count(self.session.get_outputs())
        self._lock = threading.Lock()

    def _to_model_input(self, tensor: np.ndarray) -> np.ndarray:
        expected = (self.input_height, self.input_width, 3)
        if tensor.shape != expected:
            raise InferenceError(
                f"Input tensor shape {tensor.shape} does not match detector input {expected}"
            )
        x = tensor.astype(np.float32)
        if self.channels_first:
            x = x.transpose(2, 0, 1)
        return np.ascontiguousarray(x[None])

    def _parse_outputs(self, outputs: List[np.ndarray]) -> RawDetections:
        if len(outputs) >= 3:
            boxes, scores, classes = outputs[:3]
            boxes = np.asarray(boxes, dtype=np.float32).reshape(-1, 4)
            scores = np.asarray(scores, dtype=np.float32).reshape(-1)
            classes = np.asarray(classes).reshape(-1)
            normalized = True
        elif len(outputs) == 1:
            det = np.asarray(outputs[0], dtype=np.float32)
            # If batch dimension is present, squeeze it.
            if det.ndim == 3 and det.shape[0] == 1:
                det = det[0]
            if det.ndim != 2 or det.shape[1] < 6:
                raise InferenceError(f"Unexpected detector output shape {det.shape}")
            boxes = det[:, :4]
            scores = det[:, 4]
            classes = det[:, 5]
            # Fused exports report boxes in input-tensor pixels
            normalized = False
        else:
            raise InferenceError(f"Detector returned {len(outputs)} outputs")

        if not (boxes.shape[0] == scores.shape[0] == classes.shape[0]):
            raise InferenceError(
                "Detector outputs disagree on slot count: "
                f"boxes={boxes.shape[0]}, scores={scores.shape[0]}, classes={classes.shape[0]}"
            )

        if self.box_order == "yxyx":
            boxes = boxes[:, [1, 0, 3, 2]]

        return RawDetections(
            boxes=boxes,
            scores=scores,
            class_indices=np.rint(classes).astype(np.int64),
            normalized=normalized,
        )

    def execute(self, tensor: np.ndarray) -> RawDetections:
        x = self._to_model_input(tensor)

        logger.debug("Running detector ONNX inference: input_shape=%s", x.shape)

        try:
            with self._lock:
                outputs = self.session.run(self.output_names, {self.input_name: x})
        except Exception as e:
            raise InferenceError(f"Detector execution failed: {e}") from e

        return self._parse_outputs(outputs)


def load_detector(
    model_path: str,
    box_order: str = "xyxy",
    warmup: bool = True,
) -> OnnxDetectorRuntime:
    """
    Load the ONNX detector once and warm it up with a ones tensor.

    Raises ModelLoadError on any failure.
    """
    if not os.path.exists(model_path):
        raise ModelLoadError(f"Detector model not found at {model_path}")

    logger.info("Initializing detector from %s", model_path)
    try:
        # CPU-only for maximum portability
        session = ort.InferenceSession(model_path, providers=["CPUExecutionProvider"])
    except Exception as e:
        raise ModelLoadError(f"Failed to initialize detector: {e}") from e

    runtime = OnnxDetectorRuntime(session, model_path=model_path, box_order=box_order)

    if warmup:
        dummy = np.ones((runtime.input_height, runtime.input_width, 3), dtype=np.float32)
        try:
            raw = runtime.execute(dummy)
        except InferenceError as e:
            raise ModelLoadError(f"Detector warm-up failed: {e}") from e
        # Dynamic output shapes: the slot count is only known after one run
        if runtime.max_detections is None:
            runtime.max_detections = len(raw)

    logger.info(
        "Detector ready: input=%sx%s (%s), outputs=%s, max_detections=%s",
        runtime.input_width,
        runtime.input_height,
        "NCHW" if runtime.channels_first else "NHWC",
        runtime.output_names,
        runtime.max_detections,
    )
    return runtime
