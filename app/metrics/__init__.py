# FILE: app/metrics/__init__.py
from app.metrics.tracker import BotMetrics

__all__ = ["BotMetrics"]
