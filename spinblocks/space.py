"""Block spaces and the partitioning of tensor axes into blocks."""

from __future__ import annotations

import bisect
import warnings
from typing import TYPE_CHECKING, Callable

from spinblocks import _default_block_size, _default_policy
from spinblocks.base import Serialisable
from spinblocks.errors import ConfigurationError

if TYPE_CHECKING:
    from typing import Iterable, Mapping, Optional

    from spinblocks.types import Address, SerialisedField, _BlockSpaceJSON


def _check_sizes(dim: int, block_size: int) -> None:
    """Check a dimension and a block size."""
    if dim <= 0:
        raise ConfigurationError(f"Dimension must be positive, got {dim}.")
    if block_size <= 0:
        raise ConfigurationError(f"Block size must be positive, got {block_size}.")


def split_balanced(dim: int, block_size: int) -> tuple[int, ...]:
    """Split a range into blocks of approximately equal, preferably even, size.

    The number of blocks is `ceil(dim / block_size)`. Each block takes an equal share of what
    remains of the range, and odd shares are nudged by one towards the block size so that the
    trailing blocks are not systematically short.

    Args:
        dim: Length of the range.
        block_size: Target block size.

    Returns:
        Interior split points, in increasing order.
    """
    _check_sizes(dim, block_size)

    nblks = -(-dim // block_size)
    remaining = dim
    position = 0
    splits = []
    for i in range(nblks - 1):
        size = remaining // (nblks - i)
        if size > 1 and size % 2:
            size = size + 1 if size < block_size else size - 1
        remaining -= size
        position += size
        splits.append(position)

    return tuple(splits)


def split_uniform(dim: int, block_size: int) -> tuple[int, ...]:
    """Split a range into blocks of approximately equal size.

    Args:
        dim: Length of the range.
        block_size: Target block size.

    Returns:
        Interior split points, in increasing order.
    """
    _check_sizes(dim, block_size)

    nblks = -(-dim // block_size)
    remaining = dim
    position = 0
    splits = []
    for i in range(nblks - 1):
        size = remaining // (nblks - i)
        remaining -= size
        position += size
        splits.append(position)

    return tuple(splits)


POLICIES: dict[str, Callable[[int, int], tuple[int, ...]]] = {
    "balanced": split_balanced,
    "uniform": split_uniform,
}


def get_policy(policy: str) -> Callable[[int, int], tuple[int, ...]]:
    """Get a partitioning policy by name.

    Args:
        policy: Name of the policy, one of `"balanced"` or `"uniform"`.

    Returns:
        Function returning the split points of a range for a given block size.
    """
    if policy not in POLICIES:
        raise ConfigurationError(
            f"Unknown partitioning policy {policy!r}, expected one of {', '.join(POLICIES)}."
        )
    return POLICIES[policy]


def spin_split_points(
    n: int,
    block_size: Optional[int] = None,
    policy: str = _default_policy,
) -> tuple[int, ...]:
    """Split a spin-doubled axis of length `2 * n`.

    The alpha half `[0, n)` is split according to the policy, `n` is always a split point, and the
    beta half `[n, 2n)` mirrors the alpha half.

    Args:
        n: Number of spatial orbitals.
        block_size: Target block size. If `None`, the default block size is used and no warning is
            issued when it exceeds `n`.
        policy: Name of the partitioning policy.

    Returns:
        Interior split points of the spin-doubled axis, in increasing order.
    """
    if block_size is None:
        alpha = get_policy(policy)(n, _default_block_size)
        return alpha + (n,) + tuple(p + n for p in alpha)

    alpha = get_policy(policy)(n, block_size)
    if block_size > n:
        warnings.warn(
            f"Block size {block_size} exceeds the dimension {n}, each spin is a single block.",
            stacklevel=2,
        )
    return alpha + (n,) + tuple(p + n for p in alpha)


class BlockSpace(Serialisable):
    """Partition of the axes of a tensor into contiguous blocks.

    Block spaces are immutable. Splitting an axis returns a new block space.

    Args:
        dims: Length of each axis.
        splits: Interior split points of each axis.
    """

    __slots__ = ("_dims", "_splits", "_hash")

    def __init__(self, dims: Iterable[int], splits: Optional[Iterable[Iterable[int]]] = None):
        """Initialise the block space."""
        self._dims = tuple(int(d) for d in dims)
        if splits is None:
            splits = [()] * len(self._dims)
        self._splits = tuple(tuple(sorted(set(int(p) for p in s))) for s in splits)
        self._hash = None

        if len(self._splits) != len(self._dims):
            raise ConfigurationError("Split points must be given for each axis.")
        for axis, (dim, split) in enumerate(zip(self._dims, self._splits)):
            if dim <= 0:
                raise ConfigurationError(f"Dimension of axis {axis} must be positive, got {dim}.")
            if split and (split[0] <= 0 or split[-1] >= dim):
                raise ConfigurationError(f"Split points of axis {axis} must lie within (0, {dim}).")

    @classmethod
    def create(cls, dims: Iterable[int]) -> BlockSpace:
        """Create a block space with a single block along each axis.

        Args:
            dims: Length of each axis.

        Returns:
            Block space.
        """
        return cls(dims)

    @classmethod
    def from_kinds(
        cls,
        kinds: str,
        sizes: Mapping[str, int],
        block_size: Optional[int] = None,
        policy: str = _default_policy,
    ) -> BlockSpace:
        """Create the block space of a spin-orbital tensor.

        Args:
            kinds: Kind of each axis, for example `"oovv"`.
            sizes: Number of spatial orbitals of each kind.
            block_size: Target block size. If `None`, the default block size is used.
            policy: Name of the partitioning policy.

        Returns:
            Block space, with each axis of length twice the number of spatial orbitals.
        """
        if any(kind not in sizes for kind in kinds):
            raise ConfigurationError(f"Sizes are required for each kind in {kinds!r}.")
        splits = {kind: spin_split_points(sizes[kind], block_size, policy) for kind in set(kinds)}
        return cls(
            [2 * sizes[kind] for kind in kinds],
            [splits[kind] for kind in kinds],
        )

    @property
    def dims(self) -> tuple[int, ...]:
        """Get the length of each axis."""
        return self._dims

    @property
    def splits(self) -> tuple[tuple[int, ...], ...]:
        """Get the interior split points of each axis."""
        return self._splits

    @property
    def rank(self) -> int:
        """Get the rank."""
        return len(self._dims)

    @property
    def nblocks(self) -> tuple[int, ...]:
        """Get the number of blocks along each axis."""
        return tuple(len(split) + 1 for split in self._splits)

    def _check_axis(self, axis: int) -> None:
        """Check an axis index."""
        if not 0 <= axis < self.rank:
            raise ConfigurationError(f"Axis {axis} out of range for rank {self.rank}.")

    def split(self, axis: int, position: int) -> BlockSpace:
        """Return a copy of the block space with an additional split point.

        Args:
            axis: Axis to split.
            position: Position of the split.

        Returns:
            Block space.
        """
        self._check_axis(axis)
        if not 0 < position < self._dims[axis]:
            raise ConfigurationError(
                f"Split position {position} must lie within (0, {self._dims[axis]})."
            )
        splits = list(self._splits)
        splits[axis] = splits[axis] + (position,)
        return BlockSpace(self._dims, splits)

    def autosplit(
        self,
        block_size: Optional[int] = None,
        policy: str = _default_policy,
    ) -> BlockSpace:
        """Return a copy of the block space with each spin-doubled axis split into blocks.

        Args:
            block_size: Target block size. If `None`, the default block size is used.
            policy: Name of the partitioning policy.

        Returns:
            Block space.
        """
        splits = []
        for axis, dim in enumerate(self._dims):
            if dim % 2:
                raise ConfigurationError(f"Axis {axis} of length {dim} is not spin-doubled.")
            splits.append(self._splits[axis] + spin_split_points(dim // 2, block_size, policy))
        return BlockSpace(self._dims, splits)

    def block_ranges(self, axis: int) -> list[tuple[int, int]]:
        """Get the start and stop of each block along an axis.

        Args:
            axis: Axis.

        Returns:
            List of `(start, stop)` pairs.
        """
        self._check_axis(axis)
        points = (0,) + self._splits[axis] + (self._dims[axis],)
        return list(zip(points[:-1], points[1:]))

    def _check_address(self, address: Address) -> None:
        """Check a block address."""
        if len(address) != self.rank or any(
            not 0 <= x < n for x, n in zip(address, self.nblocks)
        ):
            raise ConfigurationError(f"Block address {address} out of range {self.nblocks}.")

    def slices(self, address: Address) -> tuple[slice, ...]:
        """Get the slices of a block within the full tensor.

        Args:
            address: Block address.

        Returns:
            Slice along each axis.
        """
        self._check_address(address)
        return tuple(slice(*self.block_ranges(axis)[x]) for axis, x in enumerate(address))

    def block_shape(self, address: Address) -> tuple[int, ...]:
        """Get the shape of a block.

        Args:
            address: Block address.

        Returns:
            Shape of the block.
        """
        return tuple(s.stop - s.start for s in self.slices(address))

    def block_of(self, axis: int, index: int) -> int:
        """Get the block along an axis containing an index.

        Args:
            axis: Axis.
            index: Index along the axis.

        Returns:
            Block index.
        """
        self._check_axis(axis)
        if not 0 <= index < self._dims[axis]:
            raise ConfigurationError(f"Index {index} out of range for axis {axis}.")
        return bisect.bisect_right(self._splits[axis], index)

    def is_spin_symmetric(self, axis: int) -> bool:
        """Check whether the blocks of an axis are mirrored between the alpha and beta halves.

        Args:
            axis: Axis.

        Returns:
            Whether the axis is spin-doubled with identical block structure in both halves.
        """
        self._check_axis(axis)
        dim = self._dims[axis]
        if dim % 2:
            return False
        n = dim // 2
        split = self._splits[axis]
        if n not in split:
            return False
        alpha = tuple(p for p in split if p < n)
        beta = tuple(p - n for p in split if p > n)
        return alpha == beta

    def _hashable_fields(self) -> Iterable[SerialisedField]:
        """Yield fields of the hashable representation."""
        yield self.__class__.__name__
        yield self._dims
        yield self._splits

    def as_json(self) -> _BlockSpaceJSON:
        """Return a JSON representation of the object.

        Returns:
            Object in JSON format.
        """
        return {
            "_type": self.__class__.__name__,
            "_module": self.__class__.__module__,
            "dims": self._dims,
            "splits": self._splits,
        }

    @classmethod
    def from_json(cls, data: _BlockSpaceJSON) -> BlockSpace:
        """Return an object loaded from a JSON representation.

        Returns:
            Object loaded from JSON representation.
        """
        return cls(data["dims"], data["splits"])

    def __repr__(self) -> str:
        """Return a string representation."""
        return f"{self.__class__.__name__}(dims={self._dims}, nblocks={self.nblocks})"
