"""Conversion between dense arrays and the canonical blocks of a descriptor."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from spinblocks.errors import ConfigurationError

if TYPE_CHECKING:
    from typing import Mapping, Optional

    from numpy.typing import DTypeLike, NDArray

    from spinblocks.descriptor import SymmetryDescriptor
    from spinblocks.space import BlockSpace
    from spinblocks.types import Address


def _check_shapes(space: BlockSpace, descriptor: SymmetryDescriptor) -> None:
    """Check that a block space and a descriptor describe the same blocks."""
    if space.nblocks != descriptor.shape:
        raise ConfigurationError(
            f"Block space with {space.nblocks} blocks does not match descriptor of shape "
            f"{descriptor.shape}."
        )


def extract(
    array: NDArray[np.floating],
    space: BlockSpace,
    descriptor: SymmetryDescriptor,
) -> dict[Address, NDArray[np.floating]]:
    """Extract the canonical blocks of a dense array.

    Args:
        array: Dense array.
        space: Block space of the array.
        descriptor: Descriptor of the array.

    Returns:
        Copy of each canonical block.
    """
    _check_shapes(space, descriptor)
    if array.shape != space.dims:
        raise ConfigurationError(f"Array of shape {array.shape} does not match {space}.")
    return {
        address: np.array(array[space.slices(address)])
        for address in descriptor.canonical_blocks()
    }


def get_block(
    blocks: Mapping[Address, NDArray[np.floating]],
    descriptor: SymmetryDescriptor,
    address: Address,
) -> Optional[NDArray[np.floating]]:
    """Get the data of any block from the canonical blocks.

    Args:
        blocks: Data of each canonical block.
        descriptor: Descriptor of the tensor.
        address: Block address.

    Returns:
        Data of the block, or `None` if the block is zero.
    """
    resolved = descriptor.resolve(address)
    if resolved is None:
        return None
    reference, permutation = resolved
    return permutation.apply(blocks[reference])


def assemble(
    blocks: Mapping[Address, NDArray[np.floating]],
    space: BlockSpace,
    descriptor: SymmetryDescriptor,
    dtype: DTypeLike = np.float64,
) -> NDArray[np.floating]:
    """Assemble a dense array from its canonical blocks.

    Args:
        blocks: Data of each canonical block.
        space: Block space of the array.
        descriptor: Descriptor of the array.
        dtype: Data type of the array.

    Returns:
        Dense array, zero in the blocks that are zero by symmetry.
    """
    _check_shapes(space, descriptor)
    array = np.zeros(space.dims, dtype=dtype)
    for address in descriptor:
        block = get_block(blocks, descriptor, address)
        assert block is not None
        array[space.slices(address)] = block
    return array
