"""
Flask-based MJPEG display surface with detection overlay and controls.
"""

import cv2
import time
import logging
import threading
import numpy as np
from typing import Callable, Dict, Optional, Tuple
from flask import Flask, Response, jsonify, render_template_string
from .config import StreamConfig
from .overlay import OverlayRenderer, composite
from .session import SessionController


logger = logging.getLogger(__name__)


INDEX_HTML = """
<!DOCTYPE html>
<html>
<head>
  <title>Camera Object Detection</title>
  <style>
    body { font-family: sans-serif; margin: 0; display: flex; background: #111; color: #eee; }
    #view { position: relative; flex: 1; }
    #view img { width: 100%; display: block; }
    #score { position: absolute; left: 8px; bottom: 8px; font-size: 1.2em; }
    #error { display: none; background: #b71c1c; padding: 8px; }
    #side { width: 300px; padding: 8px; }
    #side button { margin: 4px; }
    #logs div { white-space: pre-line; border-bottom: 1px solid #333; padding: 4px 0; font-size: 0.85em; }
  </style>
</head>
<body>
  <div id="view">
    <div id="error"></div>
    <img src="/stream">
    <div id="score">Score: {{ "%.2f"|format(threshold) }}</div>
  </div>
  <div id="side">
    <div>
      <strong>Logs:</strong>
      <button onclick="post('/api/logs/clear')">Clear</button>
    </div>
    <div>
      <button onclick="post('/api/threshold/decrement')">-</button>
      <button onclick="post('/api/threshold/increment')">+</button>
    </div>
    <div id="logs"></div>
  </div>
  <script>
    function post(url) { fetch(url, {method: 'POST'}).then(refresh); }
    function refresh() {
      fetch('/api/state').then(r => r.json()).then(s => {
        document.getElementById('score').textContent = 'Score: ' + s.threshold.toFixed(2);
        const error = document.getElementById('error');
        error.style.display = s.model_error ? 'block' : 'none';
        error.textContent = s.model_error ? 'Detector unavailable: ' + s.model_error : '';
      });
      fetch('/api/logs').then(r => r.json()).then(data => {
        const logs = document.getElementById('logs');
        logs.innerHTML = '';
        data.logs.forEach(entry => {
          const item = document.createElement('div');
          item.textContent = entry;
          logs.appendChild(item);
        });
      });
    }
    refresh();
    setInterval(refresh, 1000);
  </script>
</body>
</html>
"""


class MJPEGStreamer:
    """
    MJPEG display surface using Flask.

    Preview images arrive straight from the camera; the current detections
    are drawn over them at the display size when a frame is streamed.
    """

    def __init__(self, config: StreamConfig, controller: SessionController,
                 renderer: OverlayRenderer, display_size: Tuple[int, int],
                 stats_provider: Optional[Callable[[], Dict]] = None):
        """
        Initialize MJPEG streamer.

        Args:
            config: Stream configuration
            controller: Session controller owning detections, threshold and logs
            renderer: Overlay renderer
            display_size: Display size (width, height)
            stats_provider: Returns pipeline statistics
        """
        self.config = config
        self.controller = controller
        self.renderer = renderer
        self.display_size = display_size
        self.stats_provider = stats_provider
        self.app = Flask(__name__)
        self.app.logger.setLevel(logging.WARNING)

        # Thread-safe preview buffer
        self.current_preview: Optional[np.ndarray] = None
        self.preview_lock = threading.Lock()
        self.start_time = time.time()

        self._setup_routes()

        self.server_thread: Optional[threading.Thread] = None
        self.is_running = False

    def _setup_routes(self):
        """Setup Flask routes."""

        @self.app.route('/')
        def index():
            """Serve web UI."""
            return render_template_string(INDEX_HTML, threshold=self.controller.threshold)

        @self.app.route('/stream')
        def stream():
            """MJPEG stream endpoint."""
            return Response(
                self._generate_frames(),
                mimetype='multipart/x-mixed-replace; boundary=frame'
            )

        @self.app.route('/health')
        def health():
            """Health check endpoint."""
            error = self.controller.model_error
            return jsonify({
                'status': 'degraded' if error else 'running',
                'uptime': int(time.time() - self.start_time),
                'detector_ready': error is None and self.controller.slot.handle is not None,
            })

        @self.app.route('/api/stats')
        def stats():
            """Statistics endpoint."""
            data = dict(self.stats_provider()) if self.stats_provider else {}
            data['uptime'] = int(time.time() - self.start_time)
            return jsonify(data)

        @self.app.route('/api/state')
        def state():
            """Threshold, current detections and detector status."""
            return jsonify(self._state_payload())

        @self.app.route('/api/logs')
        def logs():
            return jsonify({'logs': self.controller.logs()})

        @self.app.route('/api/logs/clear', methods=['POST'])
        def clear_logs():
            self.controller.clear_log()
            return jsonify({'logs': []})

        @self.app.route('/api/threshold/increment', methods=['POST'])
        def increment():
            self.controller.increment()
            return jsonify(self._state_payload())

        @self.app.route('/api/threshold/decrement', methods=['POST'])
        def decrement():
            self.controller.decrement()
            return jsonify(self._state_payload())

    def _state_payload(self) -> Dict:
        snapshot = self.controller.snapshot()
        return {
            'threshold': snapshot.threshold,
            'model_error': snapshot.model_error,
            'image_size': list(snapshot.image_size),
            'detections': [
                {
                    'bounding_box': [
                        d.bounding_box.left, d.bounding_box.top,
                        d.bounding_box.right, d.bounding_box.bottom,
                    ],
                    'categories': [
                        {'label': c.label, 'score': round(c.score, 4)}
                        for c in d.categories
                    ],
                }
                for d in snapshot.detections
            ],
        }

    def update_preview(self, image: np.ndarray):
        """
        Update the preview image shown under the overlay.

        Args:
            image: Camera image (BGR format)
        """
        with self.preview_lock:
            self.current_preview = image.copy()

    def render_frame(self) -> Optional[np.ndarray]:
        """
        Compose the current preview with the detection overlay.

        Returns:
            BGR image at the display size, or None before the first preview
        """
        with self.preview_lock:
            preview = self.current_preview

        if preview is None:
            return None

        snapshot = self.controller.snapshot()
        layer = self.renderer.render(snapshot.detections, snapshot.image_size, self.display_size)
        return composite(preview, layer)

    def _generate_frames(self):
        """
        Generator for MJPEG frames.

        Yields:
            MJPEG frame data
        """
        while True:
            frame = self.render_frame()
            if frame is not None:
                ret, buffer = cv2.imencode(
                    '.jpg',
                    frame,
                    [cv2.IMWRITE_JPEG_QUALITY, self.config.jpeg_quality]
                )

                if ret:
                    frame_bytes = buffer.tobytes()
                    yield (b'--frame\r\n'
                           b'Content-Type: image/jpeg\r\n\r\n' + frame_bytes + b'\r\n')

            # Small delay to prevent busy waiting
            time.sleep(0.03)

    def start(self):
        """Start the streaming server in a separate thread."""
        if self.is_running:
            logger.warning("Streamer already running")
            return

        logger.info(f"Starting MJPEG server on {self.config.host}:{self.config.port}")

        def run_server():
            self.app.run(
                host=self.config.host,
                port=self.config.port,
                threaded=True,
                debug=False,
                use_reloader=False
            )

        self.server_thread = threading.Thread(target=run_server, daemon=True)
        self.server_thread.start()
        self.is_running = True

        logger.info("MJPEG server started")

    def stop(self):
        """Stop the streaming server."""
        self.is_running = False
        logger.info("MJPEG server stopped")
