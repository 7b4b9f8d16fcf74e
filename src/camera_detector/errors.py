"""
Error types raised by the detection components.
"""


class DetectorError(Exception):
    """Base class for detection errors."""


class DecodeError(DetectorError):
    """A camera frame could not be converted into a bitmap."""


class ModelLoadError(DetectorError):
    """The detection model could not be loaded. Fatal for detection."""


class InferenceError(DetectorError):
    """Unexpected failure while running detection on a bitmap."""
