import os


def _parse_cors_origins(raw: str) -> list[str]:
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    return origins or ["*"]


CORS_ORIGINS = _parse_cors_origins(os.getenv("CORS_ORIGINS", "*"))
ALLOW_ALL_ORIGINS = CORS_ORIGINS == ["*"]

# -----------------------------------
# Detector configuration
# -----------------------------------

MODEL_DIR = os.path.abspath(
    os.path.join(os.path.dirname(__file__), "..", "models")
)

# MODEL_PATH: ONNX detector artifact (YOLOv5-style export)
MODEL_PATH = os.getenv("MODEL_PATH", os.path.join(MODEL_DIR, "ingredients.onnx"))

# LABELS_PATH: JSON label table bundled with the model.
# Must stay index-aligned with the model's training label order.
# If the file is missing, the built-in five-class table is used.
LABELS_PATH = os.getenv("LABELS_PATH", os.path.join(MODEL_DIR, "ingredients_labels.json"))

# DETECTOR_BOX_ORDER: "xyxy" (ONNX exports) or "yxyx" (TF.js YOLOv5 exports)
DETECTOR_BOX_ORDER = os.getenv("DETECTOR_BOX_ORDER", "xyxy").lower()

# CONFIDENCE_THRESHOLD: minimum score for a detection to count (inclusive)
CONFIDENCE_THRESHOLD = float(os.getenv("CONFIDENCE_THRESHOLD", "0.25"))

# PRELOAD_MODEL: load the detector once on service startup
PRELOAD_MODEL = os.getenv("PRELOAD_MODEL", "true").lower() == "true"

# -----------------------------------
# Ingredient selection
# -----------------------------------

# MAX_SELECTED_INGREDIENTS: upper bound across repeated scans
MAX_SELECTED_INGREDIENTS = int(os.getenv("MAX_SELECTED_INGREDIENTS", "10"))

# -----------------------------------
# Recipe service
# -----------------------------------

RECIPE_API_URL = os.getenv("RECIPE_API_URL", "http://localhost:7000")
RECIPE_API_TIMEOUT = float(os.getenv("RECIPE_API_TIMEOUT", "10"))
