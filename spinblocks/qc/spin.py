"""Spin blocks of spin-orbital tensors.

Each axis of a spin-orbital tensor is the concatenation of an alpha half and a beta half with
identical block structure. A spin label such as `"abab"` names the half selected along each
axis.
"""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING

from spinblocks.errors import ConfigurationError

if TYPE_CHECKING:
    from typing import Iterable

    from spinblocks.types import Address

SPINS = ("a", "b")


def conserves_spin(spins: str) -> bool:
    """Check whether a spin label conserves spin.

    The first half of the axes are the bra and the second half the ket. The label conserves spin
    when the bra and the ket contain the same number of alpha spins.

    Args:
        spins: Spin label.

    Returns:
        Whether the spin label conserves spin.
    """
    if len(spins) % 2:
        raise ConfigurationError(f"Spin label {spins!r} must have an even number of axes.")
    half = len(spins) // 2
    return sorted(spins[:half]) == sorted(spins[half:])


def spin_cases(rank: int) -> tuple[str, ...]:
    """Get the spin labels that conserve spin for a given rank.

    Args:
        rank: Rank of the tensor.

    Returns:
        Spin labels, in lexicographic order.
    """
    labels = ("".join(spins) for spins in itertools.product(SPINS, repeat=rank))
    return tuple(spins for spins in labels if conserves_spin(spins))


def spin_flip(spins: str) -> str:
    """Exchange alpha and beta in a spin label."""
    return spins.translate(str.maketrans("ab", "ba"))


def to_address(spatial: Iterable[int], spins: str, halves: Iterable[int]) -> Address:
    """Get the address of a spin block.

    Args:
        spatial: Spatial block index along each axis.
        spins: Spin label.
        halves: Number of spatial blocks along each axis.

    Returns:
        Block address in the spin-doubled block space.
    """
    return tuple(x + (n if s == "b" else 0) for x, s, n in zip(spatial, spins, halves))


def from_address(address: Address, halves: Iterable[int]) -> tuple[Address, str]:
    """Split the address of a spin block into spatial block indices and a spin label.

    Args:
        address: Block address in the spin-doubled block space.
        halves: Number of spatial blocks along each axis.

    Returns:
        Spatial block indices and spin label.
    """
    spatial = []
    spins = []
    for x, n in zip(address, halves):
        spatial.append(x % n)
        spins.append("a" if x < n else "b")
    return tuple(spatial), "".join(spins)


def flip_address(address: Address, halves: Iterable[int]) -> Address:
    """Exchange the alpha and beta halves of each axis of a block address.

    Args:
        address: Block address in the spin-doubled block space.
        halves: Number of spatial blocks along each axis.

    Returns:
        Block address.
    """
    return tuple(x + n if x < n else x - n for x, n in zip(address, halves))
