from io import BytesIO
from types import SimpleNamespace

import numpy as np
import onnx
import pytest
from onnx import TensorProto, helper
from PIL import Image

from ingredient_scanner.errors import InferenceError
from ingredient_scanner.vision_pipeline.labels import ClassLabelTable
from ingredient_scanner.vision_pipeline.types import RawDetections


class FakeRuntime:
    """Detector stand-in that returns canned raw outputs."""

    def __init__(self, scores, classes, boxes=None, width=64, height=64, error=None):
        self.input_width = width
        self.input_height = height
        self.max_detections = len(scores)
        self.scores = np.asarray(scores, dtype=np.float32)
        self.classes = np.asarray(classes, dtype=np.int64)
        if boxes is None:
            boxes = np.zeros((len(scores), 4), dtype=np.float32)
        self.boxes = np.asarray(boxes, dtype=np.float32)
        self.error = error
        self.calls = []

    def execute(self, tensor):
        self.calls.append(tensor.shape)
        if self.error is not None:
            raise self.error
        return RawDetections(boxes=self.boxes, scores=self.scores, class_indices=self.classes)


def fake_session(input_shape, outputs, output_names=None, error=None):
    """Minimal object with the InferenceSession surface the runtime uses."""
    names = output_names or [f"out{i}" for i in range(len(outputs))]

    def run(requested, feeds):
        if error is not None:
            raise error
        return list(outputs)

    return SimpleNamespace(
        get_inputs=lambda: [SimpleNamespace(name="images", shape=list(input_shape))],
        get_outputs=lambda: [
            SimpleNamespace(name=n, shape=list(np.shape(o))) for n, o in zip(names, outputs)
        ],
        run=run,
    )


def build_detector_model(path, boxes, scores, classes, width=8, height=8, channels_first=True):
    """
    Write a tiny ONNX model with YOLOv5-style outputs
    (boxes, scores, classes, shape-of-input).
    """
    n = len(scores)
    shape = [1, 3, height, width] if channels_first else [1, height, width, 3]

    def const(name, dims, values):
        return helper.make_node(
            "Constant",
            inputs=[],
            outputs=[name],
            value=helper.make_tensor(f"{name}_value", TensorProto.FLOAT, dims, values),
        )

    nodes = [
        const("boxes", [1, n, 4], np.asarray(boxes, dtype=np.float32).reshape(-1).tolist()),
        const("scores", [1, n], [float(s) for s in scores]),
        const("classes", [1, n], [float(c) for c in classes]),
        helper.make_node("Shape", inputs=["images"], outputs=["valid"]),
    ]
    graph = helper.make_graph(
        nodes,
        "fake_detector",
        [helper.make_tensor_value_info("images", TensorProto.FLOAT, shape)],
        [
            helper.make_tensor_value_info("boxes", TensorProto.FLOAT, [1, n, 4]),
            helper.make_tensor_value_info("scores", TensorProto.FLOAT, [1, n]),
            helper.make_tensor_value_info("classes", TensorProto.FLOAT, [1, n]),
            helper.make_tensor_value_info("valid", TensorProto.INT64, [4]),
        ],
    )
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    onnx.save(model, str(path))
    return str(path)


def encode_png(arr):
    buf = BytesIO()
    Image.fromarray(arr).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def label_table():
    return ClassLabelTable.default()


@pytest.fixture
def rgb_image():
    # 100 wide, 50 high, mid-gray
    return np.full((50, 100, 3), 128, dtype=np.uint8)


@pytest.fixture
def inference_error():
    return InferenceError("out of memory")
