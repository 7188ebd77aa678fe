"""Library for building kubectl command lines."""

from dataclasses import dataclass

from .command import Command
from .exceptions import CommandException

__all__ = [
    "KubectlOptions",
]


@dataclass
class KubectlOptions:
    """Settings shared by every kubectl invocation."""

    kubectl_cmd: str = "kubectl"
    """Path to the kubectl binary."""

    kube_config: str | None = None
    """Kubeconfig file, kubectl default when unset."""

    kube_context: str | None = None
    """Kubeconfig context, the current context when unset."""

    field_manager: str | None = None
    """Field manager name used on server side apply."""

    force_conflicts: bool = True
    """Take ownership of fields managed by others on server side apply."""

    def args(self, subcommand: str, *args: str) -> list[str]:
        """Return the kubectl command line for the subcommand and its arguments."""
        cmd = [self.kubectl_cmd, subcommand]
        if self.kube_context:
            cmd.extend(["--context", self.kube_context])
        if self.kube_config:
            cmd.extend(["--kubeconfig", self.kube_config])
        cmd.extend(args)
        return cmd

    def server_side_args(self) -> list[str]:
        """Return the arguments for a server side apply or diff."""
        args = [f"--force-conflicts={str(self.force_conflicts).lower()}"]
        if self.field_manager:
            args.extend(["--field-manager", self.field_manager])
        args.append("--server-side=true")
        return args

    def command(
        self,
        subcommand: str,
        *args: str,
        retcodes: list[int] | None = None,
        exc: type[CommandException] = CommandException,
    ) -> Command:
        """Return a runnable kubectl command."""
        return Command(self.args(subcommand, *args), retcodes=retcodes, exc=exc)
