"""Failure taxonomy for scheduling notifications."""

from __future__ import annotations


class NudgeError(Exception):
    """Base class for errors local to one nudge type's reconciliation."""


class PermissionDenied(NudgeError):
    """OS notification permission is not granted."""


class ArmFailed(NudgeError):
    """Transient failure arming a one-shot notification."""


class StaleHandle(NudgeError):
    """Cancel requested for a handle the OS no longer knows."""
