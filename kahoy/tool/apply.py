"""Command line tool action for applying manifests."""

from argparse import (
    ArgumentParser,
    ArgumentTypeError,
    _SubParsersAction as SubParsersAction,
)
from datetime import timedelta
import logging
import os
import pathlib
from typing import cast

from kahoy import apply
from kahoy.config import DEFAULT_CONFIG_FILE, parse_duration, read_config
from kahoy.kubectl import KubectlOptions
from kahoy.manage.timeout import DEFAULT_TIMEOUT

_LOGGER = logging.getLogger(__name__)

DEFAULT_KUBECONFIG = str(pathlib.Path.home() / ".kube" / "config")
DEFAULT_FIELD_MANAGER = "kahoy"


def duration(value: str) -> timedelta:
    """Parse a duration flag like `5m` or `1m30s`."""
    try:
        return parse_duration(value)
    except ValueError as err:
        raise ArgumentTypeError(str(err)) from err


class ApplyAction:
    """Kahoy apply action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "apply",
                help="Apply the changes between two manifest states",
                description=(
                    "Plan the resources that must exist or be deleted by comparing "
                    "the old and new manifests, and apply the plan with kubectl."
                ),
            ),
        )
        kube_group = args.add_argument_group("kubernetes")
        kube_group.add_argument(
            "--kube-config",
            default=os.environ.get("KUBECONFIG", DEFAULT_KUBECONFIG),
            help="Kubernetes configuration path, KUBECONFIG when set",
        )
        kube_group.add_argument(
            "--kube-context",
            default=None,
            help="Kubernetes configuration context",
        )
        kube_group.add_argument(
            "--kubectl-path",
            default="kubectl",
            help="Kubectl binary",
        )
        kube_group.add_argument(
            "--kube-field-manager",
            default=DEFAULT_FIELD_MANAGER,
            help="Field manager name used on server side apply",
        )
        kube_group.add_argument(
            "--disable-kube-force-conflicts",
            action="store_true",
            help="Don't take ownership of fields managed by others on apply",
        )

        args.add_argument(
            "--diff",
            action="store_true",
            help="Diff instead of applying the changes",
        )
        args.add_argument(
            "--dry-run",
            action="store_true",
            help="Print the planned resources without touching the cluster",
        )
        args.add_argument(
            "--provider",
            choices=apply.PROVIDERS,
            default=apply.PROVIDER_KUBERNETES,
            help="How the old and new manifests are loaded",
        )
        args.add_argument(
            "-o",
            "--fs-old-manifests-path",
            default=None,
            help="Old manifests path, the new path by default on the git provider",
        )
        args.add_argument(
            "-n",
            "--fs-new-manifests-path",
            required=True,
            help="New manifests path, '-' reads the manifests from stdin",
        )
        args.add_argument(
            "-e",
            "--fs-exclude",
            action="append",
            default=None,
            help="Regex of manifest paths to exclude, can be repeated",
        )
        args.add_argument(
            "-i",
            "--fs-include",
            action="append",
            default=None,
            help="Regex of manifest paths to include, can be repeated",
        )

        git_group = args.add_argument_group("git provider")
        git_group.add_argument(
            "-c",
            "--git-before-commit-sha",
            default=None,
            help="Commit of the old state, the merge base with the default branch when unset",
        )
        git_group.add_argument(
            "--git-default-branch",
            default="master",
            help="Branch used to find the old state commit",
        )

        kubernetes_group = args.add_argument_group("kubernetes provider")
        kubernetes_group.add_argument(
            "--kube-provider-id",
            default=None,
            help="Storage id that partitions the state stored in the cluster",
        )
        kubernetes_group.add_argument(
            "--kube-provider-namespace",
            default="default",
            help="Namespace of the state stored in the cluster",
        )

        filter_group = args.add_argument_group("filters")
        filter_group.add_argument(
            "-t",
            "--kube-exclude-type",
            action="append",
            default=None,
            help="Regex of `group/version/Kind` types to exclude, can be repeated",
        )
        filter_group.add_argument(
            "-l",
            "--kube-include-label",
            default=None,
            help="Label selector of the resources to include",
        )
        filter_group.add_argument(
            "-a",
            "--kube-include-annotation",
            default=None,
            help="Annotation selector of the resources to include",
        )
        filter_group.add_argument(
            "--include-namespace",
            action="append",
            default=None,
            help="Regex of the namespaces to include, can be repeated",
        )
        filter_group.add_argument(
            "-f",
            "--include-changes",
            action="store_true",
            help="Only apply the resources that changed",
        )

        args.add_argument(
            "-r",
            "--report-path",
            default=None,
            help="Path of the JSON report of the run, '-' writes to stdout",
        )
        args.add_argument(
            "--auto-approve",
            action="store_true",
            help="Don't ask for confirmation before applying",
        )
        args.add_argument(
            "--create-namespace",
            action="store_true",
            help="Create the namespaces of the resources when missing",
        )
        args.add_argument(
            "--disable-priorities",
            action="store_true",
            help="Apply all resources in one batch regardless of group priority",
        )
        args.add_argument(
            "--timeout",
            type=duration,
            default=DEFAULT_TIMEOUT,
            help="Maximum time of each of the apply and delete operations",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        fs_new_manifests_path: str,
        fs_old_manifests_path: str | None,
        provider: str,
        config_file: str | None,
        **kwargs,
    ) -> None:
        """Async Action implementation."""
        if config_file:
            app_config = await read_config(pathlib.Path(config_file), required=True)
        else:
            app_config = await read_config(pathlib.Path(DEFAULT_CONFIG_FILE))

        config = apply.ApplyConfig(
            new_path=fs_new_manifests_path,
            old_path=fs_old_manifests_path,
            provider=provider,
            exclude=kwargs.get("fs_exclude") or [],
            include=kwargs.get("fs_include") or [],
            git_before_commit_sha=kwargs.get("git_before_commit_sha"),
            git_default_branch=kwargs.get("git_default_branch") or "",
            exclude_kube_types=kwargs.get("kube_exclude_type") or [],
            label_selector=kwargs.get("kube_include_label"),
            annotation_selector=kwargs.get("kube_include_annotation"),
            include_namespaces=kwargs.get("include_namespace") or [],
            include_changes=kwargs.get("include_changes", False),
            dry_run=kwargs.get("dry_run", False),
            diff=kwargs.get("diff", False),
            auto_approve=kwargs.get("auto_approve", False),
            create_namespace=kwargs.get("create_namespace", False),
            disable_priorities=kwargs.get("disable_priorities", False),
            report_path=kwargs.get("report_path"),
            kube_provider_id=kwargs.get("kube_provider_id"),
            kube_provider_namespace=kwargs.get("kube_provider_namespace") or "default",
            timeout=kwargs.get("timeout") or DEFAULT_TIMEOUT,
            kubectl=KubectlOptions(
                kubectl_cmd=kwargs.get("kubectl_path") or "kubectl",
                kube_config=kwargs.get("kube_config"),
                kube_context=kwargs.get("kube_context"),
                field_manager=kwargs.get("kube_field_manager"),
                force_conflicts=not kwargs.get("disable_kube_force_conflicts", False),
            ),
        )
        await apply.Applier(config, app_config).run()
