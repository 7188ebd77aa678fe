"""
The storage module loads the resources and groups kahoy works on and persists
the state of every run.

- `fs`, `git_repo` and `stream` load manifests into in-memory repositories.
- `kubernetes` stores the applied resources in the cluster and lists them back
  as the old state of the next run.
- `json_state` writes the state of a run as a JSON document.
"""

from .repository import (
    GroupRepository,
    ResourceRepository,
    StateRepository,
)
from .memory import InMemoryRepository

__all__ = [
    "GroupRepository",
    "ResourceRepository",
    "StateRepository",
    "InMemoryRepository",
]
