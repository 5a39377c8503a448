"""Error taxonomy for the detection pipeline and its collaborators."""


class PipelineError(Exception):
    """Base class for failures that abort one pipeline invocation."""

    kind = "pipeline_error"


class InvalidImageError(PipelineError):
    """Input image is empty, malformed or cannot be decoded."""

    kind = "invalid_image"


class ModelLoadError(PipelineError):
    """Detector runtime failed to initialize."""

    kind = "model_load_error"


class InferenceError(PipelineError):
    """Detector runtime failed while executing."""

    kind = "inference_error"


class UnknownClassError(PipelineError):
    """Detector emitted a class index the label table does not cover.

    Signals a label-table / model mismatch, so it is never dropped silently.
    """

    kind = "unknown_class"

    def __init__(self, class_index: int, table_size: int):
        self.class_index = class_index
        self.table_size = table_size
        super().__init__(
            f"Class index {class_index} has no label (table has {table_size} entries)"
        )


class DetectionCancelled(Exception):
    """The caller abandoned an in-flight detection."""


class SelectionLimitExceeded(Exception):
    """Adding ingredients would push the selection past its limit."""

    def __init__(self, limit: int, requested: int):
        self.limit = limit
        self.requested = requested
        super().__init__(
            f"Cannot select more than {limit} ingredients (requested {requested})"
        )


class RecipeServiceError(Exception):
    """Recipe/ingredient HTTP service failed; not a pipeline error kind."""
