"""Solar Autopilot - self-learning home battery charging."""

__version__ = '1.0.0'
