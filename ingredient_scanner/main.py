"""Main FastAPI application."""

import asyncio
import logging
import sys
import threading
import time
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from ingredient_scanner.config import ALLOW_ALL_ORIGINS, CORS_ORIGINS, PRELOAD_MODEL
from ingredient_scanner.errors import (
    InvalidImageError,
    ModelLoadError,
    PipelineError,
    RecipeServiceError,
)
from ingredient_scanner.recipes import RecipeClient
from ingredient_scanner.vision_pipeline.pipeline import get_pipeline_singleton, reload_pipeline
from ingredient_scanner.vision_pipeline.preprocess import decode_image

logging.basicConfig(
    level=logging.INFO,
    stream=sys.stdout,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = ["image/jpeg", "image/png"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    if PRELOAD_MODEL:
        try:
            await asyncio.to_thread(get_pipeline_singleton)
        except ModelLoadError as e:
            # Service stays up; /detect answers 503 until /model/reload succeeds
            logger.error("Detector preload failed: %s", e)
    yield


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=not ALLOW_ALL_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

recipe_client = RecipeClient()


def _model_unavailable(e: ModelLoadError) -> HTTPException:
    return HTTPException(503, {"error": e.kind, "details": str(e)})


# -----------------------------------
# Tech endpoints
# -----------------------------------


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/model/reload")
async def reload_model():
    """Explicit retry after a failed model load."""
    try:
        pipeline = await asyncio.to_thread(reload_pipeline)
    except ModelLoadError as e:
        raise _model_unavailable(e)
    return {
        "status": "ok",
        "input_width": pipeline.runtime.input_width,
        "input_height": pipeline.runtime.input_height,
        "labels": list(pipeline.label_table.names),
    }


# -----------------------------------
# /detect — photo -> ingredient labels
# -----------------------------------


def _decode_and_analyze(pipeline, content: bytes, cancel_event: threading.Event):
    decode_start = time.time()
    rgb = decode_image(content)
    decode_ms = round((time.time() - decode_start) * 1000, 2)
    return pipeline.analyze(rgb, cancel_event), decode_ms


@app.post("/detect")
async def detect_ingredients(image: UploadFile = File(None)):
    if not image:
        raise HTTPException(422, "Image field is required")

    if image.content_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(422, "Unsupported format (use jpeg/png)")

    total_start = time.time()
    logger.info("[PIPELINE] Starting /detect endpoint for file: %s", image.filename)

    try:
        # First call may load the model when PRELOAD_MODEL is off
        pipeline = await asyncio.to_thread(get_pipeline_singleton)
    except ModelLoadError as e:
        raise _model_unavailable(e)

    content = await image.read()
    cancel_event = threading.Event()

    try:
        outcome, decode_ms = await asyncio.to_thread(
            _decode_and_analyze, pipeline, content, cancel_event
        )
    except asyncio.CancelledError:
        # Client went away; the worker thread drops its result
        cancel_event.set()
        raise
    except InvalidImageError as e:
        raise HTTPException(422, {"error": e.kind, "details": str(e)})
    except PipelineError as e:
        logger.exception("Error in /detect")
        raise HTTPException(500, {"error": e.kind, "details": str(e)})

    processing_times = dict(outcome.timings)
    processing_times["decode_ms"] = decode_ms
    processing_times["request_total_ms"] = round((time.time() - total_start) * 1000, 2)

    logger.info("[PIPELINE] /detect timings_ms=%s", processing_times)

    return {
        "ingredients": outcome.result.as_list(),
        "nothing_detected": outcome.result.is_empty,
        "detections": [d.to_dict() for d in outcome.detections],
        "processing_times": processing_times,
    }


# -----------------------------------
# /recipes — forwarded to the recipe service
# -----------------------------------


@app.get("/recipes/by-ingredients")
def recipes_by_ingredients(
    ingredients: List[str] = Query(...),
    page: int = Query(1, ge=1),
):
    try:
        return recipe_client.recipes_by_ingredients(ingredients, page=page)
    except RecipeServiceError as e:
        logger.error("Recipe service failed: %s", e)
        raise HTTPException(502, {"error": "recipe_service_error", "details": str(e)})
