"""
Main entry point for the camera object detection service.
"""

import sys
import time
import signal
import logging
import argparse
from functools import partial

from . import __version__
from .config import DEFAULT_CONFIG_PATH, Config, load_config, save_example_config
from .capture import CameraStream, FrameSlot
from .detector import DetectorSlot, configure
from .overlay import OverlayRenderer
from .pipeline import DetectionPipeline, DetectionWorker
from .session import SessionController
from .streamer import MJPEGStreamer


# Global shutdown flag
shutdown_flag = False


def signal_handler(signum, frame):
    """Handle shutdown signals."""
    global shutdown_flag
    logger.info(f"Received signal {signum}, shutting down...")
    shutdown_flag = True


def setup_logging(level: str = "INFO"):
    """
    Setup logging configuration.

    Args:
        level: Logging level
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


logger = logging.getLogger(__name__)


class Application:
    """Wires camera, detection worker, session controller and display surface."""

    def __init__(self, config: Config):
        self.config = config

        self.detector_slot = DetectorSlot(partial(
            configure,
            config.detector.model_path,
            max_results=config.detector.max_results,
        ))
        self.controller = SessionController(
            self.detector_slot, config.detector, log_capacity=config.pipeline.log_capacity
        )
        self.pipeline = DetectionPipeline(self.controller, config.pipeline)

        self.frame_slot = FrameSlot()
        self.worker = DetectionWorker(
            self.pipeline, self.frame_slot, stats_interval=config.pipeline.stats_interval
        )

        self.streamer = MJPEGStreamer(
            config.stream,
            self.controller,
            OverlayRenderer(config.overlay),
            config.display_size,
            stats_provider=self.stats,
        )
        self.camera = CameraStream(
            config.camera, self.frame_slot, on_preview=self.streamer.update_preview
        )

    def stats(self):
        data = self.pipeline.stats.snapshot()
        data['threshold'] = self.controller.threshold
        data['camera_frames'] = self.camera.frame_count
        data['replaced_frames'] = self.frame_slot.dropped
        data['pending_frames'] = self.camera.outstanding
        return data

    def start(self):
        logger.info("Loading detector...")
        if not self.controller.start():
            logger.error("Failed to initialize detector, but continuing...")
            logger.error("Frames will be streamed without detections")

        self.worker.start()

        logger.info("Initializing MJPEG streamer...")
        self.streamer.start()
        logger.info(f"Stream available at http://<your-ip>:{self.config.stream.port}/")

        logger.info("Starting camera...")
        self.camera.start()

    def stop(self):
        logger.info("Cleaning up...")
        self.camera.stop()
        self.worker.stop()
        self.detector_slot.close()
        self.streamer.stop()
        logger.info("Shutdown complete")


def main():
    """Main application loop."""
    global shutdown_flag

    parser = argparse.ArgumentParser(description='Camera Object Detection Service')
    parser.add_argument(
        '-c', '--config',
        default=DEFAULT_CONFIG_PATH,
        help='Path to configuration file'
    )
    parser.add_argument(
        '-d', '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    parser.add_argument(
        '--write-example-config',
        metavar='PATH',
        help='Write an example configuration file and exit'
    )
    args = parser.parse_args()

    if args.write_example_config:
        save_example_config(args.write_example_config)
        print(f"Example configuration written to {args.write_example_config}")
        return 0

    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"ERROR: Failed to load configuration: {e}", file=sys.stderr)
        return 1

    log_level = "DEBUG" if args.debug else config.logging.level
    setup_logging(log_level)

    logger.info("=" * 70)
    logger.info(f"Camera Object Detection v{__version__}")
    logger.info("=" * 70)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    app = None
    try:
        app = Application(config)
        app.start()

        while not shutdown_flag:
            time.sleep(0.2)

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1

    finally:
        if app is not None:
            app.stop()

    return 0


if __name__ == '__main__':
    sys.exit(main())
