"""
Detection overlay drawing and compositing.
"""

import cv2
import numpy as np
from typing import Iterable, Tuple

from .config import OverlayConfig
from .detector import BoundingBox, Detection


Size = Tuple[int, int]


def scale_box(box: BoundingBox, image_size: Size, display_size: Size) -> BoundingBox:
    """
    Map a box from inference image coordinates to display coordinates.

    Args:
        box: Box in inference bitmap pixels
        image_size: Inference bitmap size (width, height)
        display_size: Display surface size (width, height)

    Returns:
        Box in display pixels
    """
    image_w, image_h = image_size
    display_w, display_h = display_size
    if image_w <= 0 or image_h <= 0:
        raise ValueError(f"Invalid image size {image_size}")

    scale_x = display_w / image_w
    scale_y = display_h / image_h

    return BoundingBox(
        left=box.left * scale_x,
        top=box.top * scale_y,
        right=box.right * scale_x,
        bottom=box.bottom * scale_y,
    )


def format_label(detection: Detection) -> str:
    """Label text with the score as a percentage, e.g. ``cup: 87.5%``."""
    top = detection.top_category
    label = top.label if top is not None else "?"
    score = top.score if top is not None else 0.0
    return f"{label}: {score * 100:.1f}%"


def _rounded_rectangle(canvas: np.ndarray, pt1: Tuple[int, int], pt2: Tuple[int, int],
                       color, thickness: int, radius: int):
    x1, y1 = pt1
    x2, y2 = pt2
    r = max(0, min(radius, (x2 - x1) // 2, (y2 - y1) // 2))

    if r == 0:
        cv2.rectangle(canvas, pt1, pt2, color, thickness, cv2.LINE_AA)
        return

    cv2.line(canvas, (x1 + r, y1), (x2 - r, y1), color, thickness, cv2.LINE_AA)
    cv2.line(canvas, (x1 + r, y2), (x2 - r, y2), color, thickness, cv2.LINE_AA)
    cv2.line(canvas, (x1, y1 + r), (x1, y2 - r), color, thickness, cv2.LINE_AA)
    cv2.line(canvas, (x2, y1 + r), (x2, y2 - r), color, thickness, cv2.LINE_AA)

    cv2.ellipse(canvas, (x1 + r, y1 + r), (r, r), 180, 0, 90, color, thickness, cv2.LINE_AA)
    cv2.ellipse(canvas, (x2 - r, y1 + r), (r, r), 270, 0, 90, color, thickness, cv2.LINE_AA)
    cv2.ellipse(canvas, (x2 - r, y2 - r), (r, r), 0, 0, 90, color, thickness, cv2.LINE_AA)
    cv2.ellipse(canvas, (x1 + r, y2 - r), (r, r), 90, 0, 90, color, thickness, cv2.LINE_AA)


class OverlayRenderer:
    """Draws detections onto a transparent BGRA layer of the display size."""

    def __init__(self, config: OverlayConfig):
        self.config = config
        b, g, r = config.box_color
        self.box_color = (b, g, r, int(round(config.box_alpha * 255)))
        self.label_color = (0, 0, 0, int(round(config.label_alpha * 255)))
        self.text_color = (255, 255, 255, 255)

    def render(self, detections: Iterable[Detection], image_size: Size,
               display_size: Size) -> np.ndarray:
        """
        Render detections for one display frame.

        The layer starts empty on every call, so the same detections and
        sizes always give the same pixels.

        Args:
            detections: Detections in inference bitmap coordinates
            image_size: Inference bitmap size (width, height)
            display_size: Display surface size (width, height)

        Returns:
            BGRA uint8 array of shape (display height, display width, 4)
        """
        display_w, display_h = display_size
        canvas = np.zeros((display_h, display_w, 4), dtype=np.uint8)
        cfg = self.config

        for detection in detections:
            box = scale_box(detection.bounding_box, image_size, display_size)
            left, top = int(round(box.left)), int(round(box.top))
            right, bottom = int(round(box.right)), int(round(box.bottom))

            _rounded_rectangle(
                canvas, (left, top), (right, bottom),
                self.box_color, cfg.stroke_width, cfg.corner_radius
            )

            # Label background sits above the box
            label_w = max(right - left, cfg.min_label_width)
            cv2.rectangle(
                canvas,
                (left, top - cfg.label_height),
                (left + label_w, top),
                self.label_color,
                -1
            )

            cv2.putText(
                canvas,
                format_label(detection),
                (left + 10, top - 10),
                cv2.FONT_HERSHEY_SIMPLEX,
                cfg.font_scale,
                self.text_color,
                2,
                cv2.LINE_AA
            )

        return canvas


def composite(preview: np.ndarray, layer: np.ndarray) -> np.ndarray:
    """
    Alpha-blend an overlay layer onto a BGR preview image.

    The preview is resized to the layer size first.
    """
    height, width = layer.shape[:2]
    if preview.shape[:2] != (height, width):
        preview = cv2.resize(preview, (width, height), interpolation=cv2.INTER_LINEAR)

    alpha = layer[:, :, 3:4].astype(np.float32) / 255.0
    blended = preview.astype(np.float32) * (1.0 - alpha) + layer[:, :, :3].astype(np.float32) * alpha
    return np.clip(blended + 0.5, 0, 255).astype(np.uint8)
