"""Secret rotation core: generation, scheduling, storage and reconciliation."""

from .generator import CredentialGenerator
from .rotation import (
    ReconcileResult,
    ReconciliationEngine,
    RequeueDirective,
    RotationPolicy,
    RotationState,
    RotationStatus,
)
from .scheduler import RotateNow, RotationScheduler, WaitFor
from .store import FileSecretStore, SecretStoreClient, VaultSecretStore, WriteResult, build_secret_store

__all__ = [
    "CredentialGenerator",
    "FileSecretStore",
    "ReconcileResult",
    "ReconciliationEngine",
    "RequeueDirective",
    "RotateNow",
    "RotationPolicy",
    "RotationScheduler",
    "RotationState",
    "RotationStatus",
    "SecretStoreClient",
    "VaultSecretStore",
    "WaitFor",
    "WriteResult",
    "build_secret_store",
]
