"""Observability: logging and metrics for the subscription multiplexer."""

from trigger_pubsub.observability.logger import get_logger
from trigger_pubsub.observability.metrics import Metrics

__all__ = ["get_logger", "Metrics"]
