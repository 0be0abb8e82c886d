"""Build the block spaces and symmetry descriptors of a CCSD calculation and report them.

Usage:

        python -m spinblocks [-b BLOCKSIZE] [-o NOCC] [-v NVIR] [--policy POLICY] \
            [--strategy STRATEGY]
"""

from __future__ import annotations

import argparse
import sys
from typing import TYPE_CHECKING

from spinblocks import (
    __version__,
    _default_block_size,
    _default_policy,
    _default_sizes,
    _default_strategy,
)
from spinblocks.descriptor import Role
from spinblocks.errors import BlockSymmetryError
from spinblocks.misc import Stopwatch
from spinblocks.qc.blocks import STRATEGIES
from spinblocks.qc.ccsd import build_descriptors, build_spaces
from spinblocks.space import POLICIES

if TYPE_CHECKING:
    from typing import NoReturn, Optional, Sequence


class _ArgumentParser(argparse.ArgumentParser):
    """Argument parser that exits with status 1 on invalid arguments."""

    def error(self, message: str) -> NoReturn:
        """Print the usage and exit."""
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _positive(value: str) -> int:
    """Parse a positive integer."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer value: {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"value must be positive: {value!r}")
    return number


def get_parser() -> argparse.ArgumentParser:
    """Get the argument parser."""
    parser = _ArgumentParser(prog="spinblocks", description=__doc__.splitlines()[0])
    parser.add_argument(
        "-b",
        "--block-size",
        type=_positive,
        default=None,
        help=f"Target block size (default: {_default_block_size}).",
    )
    parser.add_argument(
        "-o",
        "--nocc",
        type=_positive,
        default=_default_sizes["o"],
        help="Number of occupied spatial orbitals.",
    )
    parser.add_argument(
        "-v",
        "--nvir",
        type=_positive,
        default=_default_sizes["v"],
        help="Number of virtual spatial orbitals.",
    )
    parser.add_argument(
        "--policy",
        choices=tuple(POLICIES),
        default=_default_policy,
        help="Partitioning policy.",
    )
    parser.add_argument(
        "--strategy",
        choices=STRATEGIES,
        default=_default_strategy,
        help="Enumeration strategy of the canonical blocks.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the command line interface.

    Args:
        argv: Command line arguments. If `None`, `sys.argv[1:]` is used.

    Returns:
        Exit status.
    """
    args = get_parser().parse_args(argv)

    try:
        with Stopwatch("creating the block spaces"):
            spaces = build_spaces(
                args.nocc,
                args.nvir,
                block_size=args.block_size,
                policy=args.policy,
            )
        with Stopwatch("creating the descriptors"):
            descriptors = build_descriptors(spaces, strategy=args.strategy)
    except BlockSymmetryError as e:
        print(f"spinblocks: error: {e}", file=sys.stderr)
        return 1

    print(f"{'kind':<6} {'blocks':<16} {'canonical':>10} {'derivative':>10}  fingerprint")
    for kinds, descriptor in descriptors.items():
        grid = "x".join(map(str, spaces[kinds].nblocks))
        print(
            f"{kinds:<6} {grid:<16} {descriptor.count(Role.CANONICAL):>10} "
            f"{descriptor.count(Role.DERIVATIVE):>10}  {descriptor.fingerprint()[:16]}"
        )

    return 0


if __name__ == "__main__":
    sys.exit(main())
