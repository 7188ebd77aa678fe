"""Resource managers that make the planned resources exist or be missing.

Every manager implements `apply` and `delete` and most of them wrap an inner
manager, so behaviors are composed into a chain. A typical apply run uses:

  TimeoutManager -> HookManager -> NamespaceEnsureManager -> PriorityManager
    -> WaitManager -> KubectlManager

Diff and dry runs replace `WaitManager -> KubectlManager` with a
`DiffManager` or `DryRunManager`.
"""

from .batch import PriorityManager
from .diff import DiffManager
from .dryrun import DryRunManager
from .hook import HookManager
from .kubectl import KubectlManager
from .manager import NoopManager, ResourceManager
from .namespace import NamespaceEnsureManager
from .timeout import TimeoutManager
from .wait import WaitManager

__all__ = [
    "ResourceManager",
    "NoopManager",
    "PriorityManager",
    "WaitManager",
    "HookManager",
    "NamespaceEnsureManager",
    "KubectlManager",
    "DiffManager",
    "DryRunManager",
    "TimeoutManager",
]
