from .classifier import classify
from .supervisor import (CaptureConflictError, CaptureError, CaptureLaunchError,
                         CaptureSupervisor)

__all__ = ["classify", "CaptureSupervisor", "CaptureError",
           "CaptureConflictError", "CaptureLaunchError"]
