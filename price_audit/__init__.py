"""Line-item matching and price verification engine."""

__version__ = "1.0.0"
