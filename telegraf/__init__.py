"""Metric-gathering plugins, an accumulator for their points, and system statistics readers."""

__version__ = "0.1.0"