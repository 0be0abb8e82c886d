"""Canonical and derivative blocks of the spin-orbital tensors of coupled cluster theory."""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from spinblocks import _default_strategy
from spinblocks.descriptor import SymmetryDescriptor
from spinblocks.errors import ConfigurationError
from spinblocks.qc.spin import flip_address, spin_cases, to_address
from spinblocks.symmetry import (
    Permutation,
    Symmetry,
    closure,
    fully_antisymmetric_group,
    non_symmetric_group,
)

if TYPE_CHECKING:
    from typing import Iterator

    from spinblocks.types import Address

# Developer notes:
# * Guarded enumeration sweeps every spin label (in lexicographic order) and every spatial tuple
#   (in lexicographic order), so that the canonical block of each symmetry orbit is its first
#   element in that order. The `canonical_blocks` sweeps of the direct enumeration must yield
#   exactly these blocks, and are checked against the guarded enumeration in the tests.
# * The alpha and beta halves are related by a spin flip with unit phase (restricted orbitals),
#   so `bbbb` and `baba`-like labels are never canonical.

STRATEGIES = ("guarded", "direct")


class SpinBlocks(ABC):
    """Base class for the block generators of spin-orbital tensors.

    Args:
        nocc: Number of spatial blocks of the occupied (hole) space.
        nvir: Number of spatial blocks of the virtual (particle) space.
    """

    kinds: str
    symmetry: Symmetry

    def __init__(self, nocc: int, nvir: int):
        """Initialise the object."""
        if nocc <= 0 or nvir <= 0:
            raise ConfigurationError(
                f"Number of spatial blocks must be positive, got nocc={nocc}, nvir={nvir}."
            )
        self.nocc = nocc
        self.nvir = nvir

        for permutation in self.symmetry:
            if permutation(self.kinds) != tuple(self.kinds):
                raise ConfigurationError(
                    f"{permutation} exchanges axes of different kinds in {self.kinds!r}."
                )

    @property
    def rank(self) -> int:
        """Get the rank."""
        return len(self.kinds)

    @property
    def halves(self) -> tuple[int, ...]:
        """Get the number of spatial blocks along each axis."""
        return tuple(self.nocc if kind == "o" else self.nvir for kind in self.kinds)

    @property
    def shape(self) -> tuple[int, ...]:
        """Get the number of spin blocks along each axis."""
        return tuple(2 * n for n in self.halves)

    def descriptor(self) -> SymmetryDescriptor:
        """Return an empty descriptor of the correct shape."""
        return SymmetryDescriptor(self.shape)

    def address(self, spatial: tuple[int, ...], spins: str) -> Address:
        """Get the address of a spin block.

        Args:
            spatial: Spatial block index along each axis.
            spins: Spin label.

        Returns:
            Block address.
        """
        return to_address(spatial, spins, self.halves)

    def images(self, address: Address) -> Iterator[tuple[Address, Permutation]]:
        """Iterate over the blocks related to a block by symmetry.

        Args:
            address: Block address.

        Yields:
            Address of each related block, and the permutation mapping the data of the block at
            `address` onto it. Blocks related in more than one way are yielded more than once.
        """
        for permutation in self.symmetry:
            target = permutation(address)
            yield target, permutation
            yield flip_address(target, self.halves), permutation

    @abstractmethod
    def canonical_blocks(self) -> Iterator[tuple[str, tuple[int, ...]]]:
        """Iterate over the canonical blocks.

        Yields:
            Spin label and spatial block indices of each canonical block.
        """
        pass

    def generate(
        self,
        descriptor: SymmetryDescriptor,
        strategy: str = _default_strategy,
    ) -> SymmetryDescriptor:
        """Declare the canonical and derivative blocks in a descriptor.

        Args:
            descriptor: Descriptor to populate.
            strategy: Enumeration strategy, `"guarded"` or `"direct"`.

        Returns:
            The descriptor.
        """
        if descriptor.shape != self.shape:
            raise ConfigurationError(
                f"Descriptor of shape {descriptor.shape} does not match {self.kinds!r} blocks "
                f"of shape {self.shape}."
            )
        if strategy == "guarded":
            self._generate_guarded(descriptor)
        elif strategy == "direct":
            self._generate_direct(descriptor)
        else:
            raise ConfigurationError(
                f"Unknown strategy {strategy!r}, expected one of {', '.join(STRATEGIES)}."
            )
        return descriptor

    def _generate_guarded(self, descriptor: SymmetryDescriptor) -> None:
        """Populate a descriptor, checking each block is still unassigned before declaring it."""
        ranges = [range(n) for n in self.halves]
        for spins in spin_cases(self.rank):
            for spatial in itertools.product(*ranges):
                address = self.address(spatial, spins)
                if not descriptor.query(address).is_zero:
                    continue
                descriptor.declare_canonical(address)
                for target, permutation in self.images(address):
                    if descriptor.query(target).is_zero:
                        descriptor.declare_derivative(target, address, permutation)

    def _generate_direct(self, descriptor: SymmetryDescriptor) -> None:
        """Populate a descriptor from the canonical blocks only."""
        for spins, spatial in self.canonical_blocks():
            address = self.address(spatial, spins)
            descriptor.declare_canonical(address)
            seen = {address}
            for target, permutation in self.images(address):
                if target in seen:
                    continue
                seen.add(target)
                descriptor.declare_derivative(target, address, permutation)

    def __repr__(self) -> str:
        """Return a string representation."""
        return f"{self.__class__.__name__}(nocc={self.nocc}, nvir={self.nvir})"


class OOBlocks(SpinBlocks):
    """Blocks of an antisymmetric hole-hole tensor, such as the occupied Fock matrix block."""

    kinds = "oo"
    symmetry = fully_antisymmetric_group(2)

    def canonical_blocks(self) -> Iterator[tuple[str, tuple[int, ...]]]:
        """Iterate over the canonical blocks.

        Yields:
            Spin label and spatial block indices of each canonical block.
        """
        o = self.nocc
        for i in range(o):
            for j in range(i + 1, o):
                yield "aa", (i, j)

        # Diagonal
        for i in range(o):
            yield "aa", (i, i)


class OVBlocks(SpinBlocks):
    """Blocks of a hole-particle tensor, such as the T1 amplitudes."""

    kinds = "ov"
    symmetry = non_symmetric_group(2)

    def canonical_blocks(self) -> Iterator[tuple[str, tuple[int, ...]]]:
        """Iterate over the canonical blocks.

        Yields:
            Spin label and spatial block indices of each canonical block.
        """
        for i, a in itertools.product(range(self.nocc), range(self.nvir)):
            yield "aa", (i, a)


class OOOOBlocks(SpinBlocks):
    """Blocks of a hole⁴ tensor, such as the integrals `<ij||kl>`.

    The tensor is antisymmetric in the bra and in the ket, and symmetric under the exchange of the
    bra and ket.
    """

    kinds = "oooo"
    symmetry = closure(
        Permutation((1, 0, 2, 3), -1),
        Permutation((0, 1, 3, 2), -1),
        Permutation((2, 3, 0, 1), +1),
    )

    def canonical_blocks(self) -> Iterator[tuple[str, tuple[int, ...]]]:
        """Iterate over the canonical blocks.

        Yields:
            Spin label and spatial block indices of each canonical block.
        """
        o = self.nocc

        # aaaa: ordered pairs, bra pair before ket pair
        for i in range(o):
            for j in range(i, o):
                for k in range(i, o):
                    for l in range(k, o):
                        if (i, j) <= (k, l):
                            yield "aaaa", (i, j, k, l)

        # abab: bra/ket exchange, and exchange within both pairs with a spin flip
        for i, j, k, l in itertools.product(range(o), repeat=4):
            if (i, j, k, l) <= min((k, l, i, j), (j, i, l, k), (l, k, j, i)):
                yield "abab", (i, j, k, l)


class OOOVBlocks(SpinBlocks):
    """Blocks of a hole³-particle tensor, such as the integrals `<ij||ka>`."""

    kinds = "ooov"
    symmetry = fully_antisymmetric_group(2) * non_symmetric_group(2)

    def canonical_blocks(self) -> Iterator[tuple[str, tuple[int, ...]]]:
        """Iterate over the canonical blocks.

        Yields:
            Spin label and spatial block indices of each canonical block.
        """
        o, v = self.nocc, self.nvir

        for i in range(o):
            for j in range(i, o):
                for k, a in itertools.product(range(o), range(v)):
                    yield "aaaa", (i, j, k, a)

        # The bra exchange of abab is baab, so every ordering of the bra is canonical
        for i, j, k, a in itertools.product(range(o), range(o), range(o), range(v)):
            yield "abab", (i, j, k, a)


class OVOVBlocks(SpinBlocks):
    """Blocks of an interleaved hole-particle-hole-particle tensor, such as `<ia||jb>`."""

    kinds = "ovov"
    symmetry = Symmetry(
        Permutation((0, 1, 2, 3), +1),
        Permutation((2, 3, 0, 1), +1),
    )

    def canonical_blocks(self) -> Iterator[tuple[str, tuple[int, ...]]]:
        """Iterate over the canonical blocks.

        Yields:
            Spin label and spatial block indices of each canonical block.
        """
        o, v = self.nocc, self.nvir
        for spins in ("aaaa", "abab", "abba"):
            for i, a, j, b in itertools.product(range(o), range(v), range(o), range(v)):
                if (i, a) <= (j, b):
                    yield spins, (i, a, j, b)


class OOVVBlocks(SpinBlocks):
    """Blocks of a hole²-particle² tensor, such as the T2 amplitudes or `<ij||ab>`."""

    kinds = "oovv"
    symmetry = fully_antisymmetric_group(2) * fully_antisymmetric_group(2)

    def canonical_blocks(self) -> Iterator[tuple[str, tuple[int, ...]]]:
        """Iterate over the canonical blocks.

        Yields:
            Spin label and spatial block indices of each canonical block.
        """
        o, v = self.nocc, self.nvir

        for i in range(o):
            for j in range(i, o):
                for a in range(v):
                    for b in range(a, v):
                        yield "aaaa", (i, j, a, b)

        for i in range(o):
            for j in range(i + 1, o):
                for a, b in itertools.product(range(v), repeat=2):
                    yield "abab", (i, j, a, b)

        # Diagonal: abab(i,i,a,b) and abab(i,i,b,a) are related by exchanging both pairs
        for i in range(o):
            for a in range(v):
                for b in range(a, v):
                    yield "abab", (i, i, a, b)


class OVVVBlocks(SpinBlocks):
    """Blocks of a hole-particle³ tensor, such as the integrals `<ia||bc>`."""

    kinds = "ovvv"
    symmetry = non_symmetric_group(2) * fully_antisymmetric_group(2)

    def canonical_blocks(self) -> Iterator[tuple[str, tuple[int, ...]]]:
        """Iterate over the canonical blocks.

        Yields:
            Spin label and spatial block indices of each canonical block.
        """
        o, v = self.nocc, self.nvir

        for i, a in itertools.product(range(o), range(v)):
            for b in range(v):
                for c in range(b, v):
                    yield "aaaa", (i, a, b, c)

        for i, a, b, c in itertools.product(range(o), range(v), range(v), range(v)):
            yield "abab", (i, a, b, c)


GENERATORS: dict[str, type[SpinBlocks]] = {
    cls.kinds: cls
    for cls in (OOBlocks, OVBlocks, OOOOBlocks, OOOVBlocks, OVOVBlocks, OOVVBlocks, OVVVBlocks)
}


def get_generator(kinds: str, nocc: int, nvir: int) -> SpinBlocks:
    """Get the block generator for a tensor.

    Tensors with only virtual axes use the generator of the corresponding occupied tensor, with
    the roles of the two spaces exchanged.

    Args:
        kinds: Kind of each axis, for example `"oovv"`.
        nocc: Number of spatial blocks of the occupied space.
        nvir: Number of spatial blocks of the virtual space.

    Returns:
        Block generator.
    """
    if kinds in GENERATORS:
        return GENERATORS[kinds](nocc, nvir)
    if set(kinds) == {"v"}:
        swapped = "o" * len(kinds)
        if swapped in GENERATORS:
            return GENERATORS[swapped](nvir, nocc)
    raise ConfigurationError(f"No block generator for tensors of kind {kinds!r}.")


def generate_oo(
    o: int, v: int, descriptor: SymmetryDescriptor, strategy: str = _default_strategy
) -> None:
    """Declare the blocks of a hole-hole tensor.

    Args:
        o: Number of spatial blocks of the occupied space.
        v: Number of spatial blocks of the virtual space.
        descriptor: Descriptor to populate.
        strategy: Enumeration strategy, `"guarded"` or `"direct"`.
    """
    OOBlocks(o, v).generate(descriptor, strategy=strategy)


def generate_ov(
    o: int, v: int, descriptor: SymmetryDescriptor, strategy: str = _default_strategy
) -> None:
    """Declare the blocks of a hole-particle tensor.

    Args:
        o: Number of spatial blocks of the occupied space.
        v: Number of spatial blocks of the virtual space.
        descriptor: Descriptor to populate.
        strategy: Enumeration strategy, `"guarded"` or `"direct"`.
    """
    OVBlocks(o, v).generate(descriptor, strategy=strategy)


def generate_oooo(
    o: int, v: int, descriptor: SymmetryDescriptor, strategy: str = _default_strategy
) -> None:
    """Declare the blocks of a hole⁴ tensor.

    Args:
        o: Number of spatial blocks of the occupied space.
        v: Number of spatial blocks of the virtual space.
        descriptor: Descriptor to populate.
        strategy: Enumeration strategy, `"guarded"` or `"direct"`.
    """
    OOOOBlocks(o, v).generate(descriptor, strategy=strategy)


def generate_ooov(
    o: int, v: int, descriptor: SymmetryDescriptor, strategy: str = _default_strategy
) -> None:
    """Declare the blocks of a hole³-particle tensor.

    Args:
        o: Number of spatial blocks of the occupied space.
        v: Number of spatial blocks of the virtual space.
        descriptor: Descriptor to populate.
        strategy: Enumeration strategy, `"guarded"` or `"direct"`.
    """
    OOOVBlocks(o, v).generate(descriptor, strategy=strategy)


def generate_ovov(
    o: int, v: int, descriptor: SymmetryDescriptor, strategy: str = _default_strategy
) -> None:
    """Declare the blocks of an interleaved hole-particle-hole-particle tensor.

    Args:
        o: Number of spatial blocks of the occupied space.
        v: Number of spatial blocks of the virtual space.
        descriptor: Descriptor to populate.
        strategy: Enumeration strategy, `"guarded"` or `"direct"`.
    """
    OVOVBlocks(o, v).generate(descriptor, strategy=strategy)


def generate_oovv(
    o: int, v: int, descriptor: SymmetryDescriptor, strategy: str = _default_strategy
) -> None:
    """Declare the blocks of a hole²-particle² tensor.

    Args:
        o: Number of spatial blocks of the occupied space.
        v: Number of spatial blocks of the virtual space.
        descriptor: Descriptor to populate.
        strategy: Enumeration strategy, `"guarded"` or `"direct"`.
    """
    OOVVBlocks(o, v).generate(descriptor, strategy=strategy)


def generate_ovvv(
    o: int, v: int, descriptor: SymmetryDescriptor, strategy: str = _default_strategy
) -> None:
    """Declare the blocks of a hole-particle³ tensor.

    Args:
        o: Number of spatial blocks of the occupied space.
        v: Number of spatial blocks of the virtual space.
        descriptor: Descriptor to populate.
        strategy: Enumeration strategy, `"guarded"` or `"direct"`.
    """
    OVVVBlocks(o, v).generate(descriptor, strategy=strategy)
