"""
Configuration management using Pydantic for validation and type checking.
"""

import os
import yaml
from pathlib import Path
from typing import Optional, Tuple
from pydantic import BaseModel, Field, field_validator, model_validator


DEFAULT_CONFIG_PATH = "/etc/camera-detector/config.yaml"


class CameraConfig(BaseModel):
    """Camera capture configuration."""
    device: str = Field(default="0", description="Camera index, device path or video file")
    width: int = Field(default=640, ge=160, le=3840, description="Capture width")
    height: int = Field(default=480, ge=120, le=2160, description="Capture height")
    fps: int = Field(default=30, ge=1, le=60, description="Capture FPS")
    reconnect_interval: float = Field(
        default=5.0, ge=0.0, le=60.0, description="Seconds between reconnect attempts"
    )

    @field_validator("device", mode="before")
    @classmethod
    def coerce_device(cls, v) -> str:
        """Accept bare camera indices from YAML."""
        return str(v)

    @property
    def source(self):
        """Device as passed to OpenCV: integer index or path."""
        return int(self.device) if self.device.isdigit() else self.device


class DetectorConfig(BaseModel):
    """Object detector configuration."""
    model_path: str = Field(
        default="models/common_detect.tflite",
        description="Path to the TFLite detection model"
    )
    max_results: int = Field(default=3, ge=1, le=100, description="Detections kept per frame")
    initial_threshold: float = Field(
        default=0.6, ge=0.0, le=1.0, description="Initial score threshold"
    )
    threshold_step: float = Field(
        default=0.05, gt=0.0, le=0.5, description="Threshold increment/decrement step"
    )
    min_threshold: float = Field(default=0.1, ge=0.0, le=1.0)
    max_threshold: float = Field(default=1.0, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def validate_bounds(self) -> "DetectorConfig":
        """Validate threshold bounds."""
        if self.min_threshold > self.max_threshold:
            raise ValueError("min_threshold must not exceed max_threshold")
        if not self.min_threshold <= self.initial_threshold <= self.max_threshold:
            raise ValueError("initial_threshold must lie within [min_threshold, max_threshold]")
        return self


class PipelineConfig(BaseModel):
    """Detection pipeline configuration."""
    log_interval_ms: int = Field(
        default=2000, ge=0, description="Minimum interval between log history entries"
    )
    log_capacity: int = Field(default=50, ge=1, le=10000, description="Log history size")
    jpeg_quality: int = Field(
        default=100, ge=1, le=100, description="Quality of the frame conversion JPEG step"
    )
    jpeg_round_trip: bool = Field(
        default=True, description="Convert frames through a JPEG encode/decode"
    )
    stats_interval: float = Field(
        default=30.0, gt=0.0, description="Seconds between statistics log lines"
    )


class OverlayConfig(BaseModel):
    """Detection overlay drawing configuration."""
    box_color: Tuple[int, int, int] = Field(
        default=(0x50, 0xAF, 0x4C), description="Box colour (BGR)"
    )
    box_alpha: float = Field(default=0.7, ge=0.0, le=1.0)
    label_alpha: float = Field(default=0.6, ge=0.0, le=1.0)
    stroke_width: int = Field(default=4, ge=1, le=32)
    corner_radius: int = Field(default=12, ge=0, le=64)
    min_label_width: int = Field(default=120, ge=0, le=1024)
    label_height: int = Field(default=40, ge=10, le=256)
    font_scale: float = Field(default=1.0, gt=0.0, le=8.0)


class StreamConfig(BaseModel):
    """Streaming server configuration."""
    host: str = Field(default="0.0.0.0", description="Server bind address")
    port: int = Field(default=8080, ge=1024, le=65535, description="Server port")
    jpeg_quality: int = Field(
        default=80, ge=1, le=100, description="JPEG compression quality"
    )
    display_width: Optional[int] = Field(
        default=None, ge=160, le=3840, description="Display width, camera width if unset"
    )
    display_height: Optional[int] = Field(
        default=None, ge=120, le=2160, description="Display height, camera height if unset"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Logging level")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate logging level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Invalid logging level. Must be one of {valid_levels}")
        return v


class Config(BaseModel):
    """Main configuration class."""
    camera: CameraConfig = Field(default_factory=CameraConfig)
    detector: DetectorConfig = Field(default_factory=DetectorConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    overlay: OverlayConfig = Field(default_factory=OverlayConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def display_size(self) -> Tuple[int, int]:
        """Display surface size as (width, height)."""
        return (
            self.stream.display_width or self.camera.width,
            self.stream.display_height or self.camera.height,
        )


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from YAML file with sensible defaults.

    Args:
        config_path: Path to configuration file. If None, uses default location.

    Returns:
        Config object with loaded settings.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    # If config file doesn't exist, use defaults
    if not os.path.exists(config_path):
        return Config()

    try:
        with open(config_path, 'r') as f:
            config_dict = yaml.safe_load(f)

        # Handle empty file
        if config_dict is None:
            return Config()

        return Config(**config_dict)
    except Exception as e:
        raise RuntimeError(f"Failed to load configuration from {config_path}: {e}")


def save_example_config(output_path: str) -> None:
    """
    Save an example configuration file with comments.

    Args:
        output_path: Where to save the example config.
    """
    example_yaml = """# Camera settings
camera:
  device: "0"              # Camera index, V4L2 device path or video file
  width: 640               # Capture width in pixels
  height: 480              # Capture height in pixels
  fps: 30                  # Frames per second
  reconnect_interval: 5.0  # Seconds between reconnect attempts

# Detector settings
detector:
  model_path: "models/common_detect.tflite"  # TFLite detection model
  max_results: 3           # Detections kept per frame
  initial_threshold: 0.6   # Starting score threshold
  threshold_step: 0.05     # Step for the -/+ controls
  min_threshold: 0.1
  max_threshold: 1.0

# Pipeline settings
pipeline:
  log_interval_ms: 2000    # Minimum interval between log entries
  log_capacity: 50         # Log history size
  jpeg_quality: 100        # Quality of the frame conversion JPEG step
  jpeg_round_trip: true    # false converts YUV to RGB directly
  stats_interval: 30       # Seconds between statistics log lines

# Overlay settings
overlay:
  min_label_width: 120
  label_height: 40
  stroke_width: 4
  corner_radius: 12
  font_scale: 1.0

# Streaming settings
stream:
  host: "0.0.0.0"      # Bind to all interfaces
  port: 8080           # HTTP server port
  jpeg_quality: 80     # JPEG compression quality (1-100)
  # display_width: 1280
  # display_height: 960

# Logging
logging:
  level: "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
"""

    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w') as f:
        f.write(example_yaml)
