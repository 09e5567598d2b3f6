"""OpenClaw control-plane adapter service."""

__version__ = "1.1.0"
