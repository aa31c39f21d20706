"""Rotation controller: policy watching, state persistence and requeueing."""

from .manager import PolicyFileWatcher, RotationController
from .queue import RateLimiter, RequeueQueue
from .state import StateStore

__all__ = ["PolicyFileWatcher", "RateLimiter", "RequeueQueue", "RotationController", "StateStore"]
