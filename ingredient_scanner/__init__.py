"""Photo-to-ingredient detection with an on-device ONNX detector."""
