"""Command line tool action printing the kahoy version."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from kahoy import __version__


class VersionAction:
    """Kahoy version action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "version",
                help="Print the kahoy version",
            ),
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        print(__version__)
