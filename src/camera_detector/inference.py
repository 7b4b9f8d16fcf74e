"""
MediaPipe Tasks inference wrapper for camera object detection.
"""

import logging
import numpy as np
from pathlib import Path

from .errors import InferenceError, ModelLoadError

logger = logging.getLogger(__name__)


class MediaPipeInference:
    """MediaPipe Tasks ObjectDetector wrapper running in IMAGE mode."""

    def __init__(self, model_path: str, max_results: int, score_threshold: float):
        self.model_path = model_path
        self.max_results = max_results
        self.score_threshold = score_threshold
        self.detector = None
        self.is_initialized = False

        try:
            import mediapipe as mp
            from mediapipe.tasks import python as mp_tasks
            from mediapipe.tasks.python import vision
            self.mp = mp
            self.BaseOptions = mp_tasks.BaseOptions
            self.vision = vision
        except Exception as e:
            logger.error(f"Failed to import mediapipe: {e}")
            raise ModelLoadError(f"mediapipe is not available: {e}") from e

    def initialize(self):
        """
        Load the model with the configured options.

        Raises:
            ModelLoadError: If the model file is missing or cannot be loaded
        """
        if not Path(self.model_path).is_file():
            raise ModelLoadError(f"Model file not found: {self.model_path}")

        try:
            logger.info(
                f"Loading model: {self.model_path} "
                f"(max_results={self.max_results}, score_threshold={self.score_threshold:.2f})"
            )
            options = self.vision.ObjectDetectorOptions(
                base_options=self.BaseOptions(model_asset_path=self.model_path),
                running_mode=self.vision.RunningMode.IMAGE,
                max_results=self.max_results,
                score_threshold=self.score_threshold,
            )
            self.detector = self.vision.ObjectDetector.create_from_options(options)
        except Exception as e:
            logger.error(f"Failed to load model {self.model_path}: {e}")
            raise ModelLoadError(f"Failed to load model {self.model_path}: {e}") from e

        self.is_initialized = True

    def infer(self, image: np.ndarray):
        """
        Run detection on an RGB image.

        Returns:
            MediaPipe ObjectDetectorResult
        """
        if not self.is_initialized:
            raise InferenceError("Inference engine is not initialized")

        try:
            mp_image = self.mp.Image(
                image_format=self.mp.ImageFormat.SRGB,
                data=np.ascontiguousarray(image, dtype=np.uint8),
            )
            return self.detector.detect(mp_image)
        except Exception as e:
            raise InferenceError(f"Inference failed: {e}") from e

    def cleanup(self):
        """Release MediaPipe resources."""
        if self.detector is not None:
            self.detector.close()
            self.detector = None
        self.is_initialized = False
