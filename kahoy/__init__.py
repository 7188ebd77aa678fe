"""
kahoy applies raw Kubernetes manifests declaratively.

Two snapshots of a manifests tree (old and new) are compared to plan which
resources must exist and which must be deleted, and the plan is executed
with kubectl in priority batches, with optional waits and hooks per group.
"""

__version__ = "0.1.0"

__all__ = [
    "apply",
    "config",
    "model",
    "plan",
    "process",
    "manage",
    "storage",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
