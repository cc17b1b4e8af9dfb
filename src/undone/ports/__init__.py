"""Ports — protocols shared across actions and schedules."""

from __future__ import annotations

from .executable import IExecutable, ISchedulable

__all__ = [
    "IExecutable",
    "ISchedulable",
]
