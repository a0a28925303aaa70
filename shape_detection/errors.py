"""Exceptions raised by the shape detection pipeline."""

from __future__ import annotations


class InvalidConfiguration(ValueError):
    """Raised when a component is constructed with unusable parameters.

    Validation happens at construction time so that a misconfigured pipeline
    fails before any point cloud is processed.
    """
