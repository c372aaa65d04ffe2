"""Observability Query Server - explorer queries over Loki, Tempo and Prometheus."""

__version__ = "0.1.0"
