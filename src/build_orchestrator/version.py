"""Core version reported to plugins and by `buildyard --version`."""

__version__ = "0.3.0"

BUILD_TIME = "unspecified"
