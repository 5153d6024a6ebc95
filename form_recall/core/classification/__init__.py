"""
Field structure classification.

Assigns every field an instance type (single value, value set, repeating
section row, section candidate) and a data-sharing scope.
"""

from __future__ import annotations

from .classifier import Classification, FieldClassifier
from .registry import RepeaterRegistry

__all__ = [
    "Classification",
    "FieldClassifier",
    "RepeaterRegistry",
]
