"""
Vision pipeline package:
- preprocess: image decoding and letterboxing into the detector input
- detector: ONNX detector runtime behind a small capability interface
- labels: class index -> ingredient name table
- postprocess: confidence filtering and first-seen label dedup
- pipeline: orchestrator with cancellation and stage timings
"""
