"""
Camera Object Detection

Live object detection on camera frames using a TFLite model through
MediaPipe Tasks. Streams the camera preview with detection overlays via
HTTP MJPEG and exposes threshold and log controls.
"""

__version__ = "1.0.0"
__license__ = "MIT"
