"""ZoomStack - Deep Zoom tile pyramid builder for large images."""

__version__ = "0.1.0"
