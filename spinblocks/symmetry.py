"""Permutation symmetry."""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING

import numpy as np

from spinblocks.base import Serialisable
from spinblocks.errors import ConfigurationError

if TYPE_CHECKING:
    from typing import Iterable, Iterator

    from numpy.typing import NDArray

    from spinblocks.types import Address, SerialisedField, _PermutationJSON, _SymmetryJSON


class Permutation(Serialisable):
    """Class for a permutation of tensor axes with a phase.

    A permutation `p` with sign `s` maps an array `x` onto `s * x.transpose(p)`, and a block
    address `a` onto the address `(a[p[0]], a[p[1]], ...)` of the permuted block.

    Args:
        permutation: Permutation.
        sign: Sign of the permutation.
    """

    __slots__ = ("_permutation", "_sign", "_hash")

    def __init__(self, permutation: Iterable[int], sign: int = 1):
        """Initialise the permutation."""
        self._permutation = tuple(int(p) for p in permutation)
        self._sign = int(sign)
        self._hash = None

        if sorted(self._permutation) != list(range(len(self._permutation))):
            raise ConfigurationError(f"{self._permutation} is not a permutation of the axes.")
        if self._sign not in (1, -1):
            raise ConfigurationError(f"Phase must be +1 or -1, got {sign}.")

    @classmethod
    def identity(cls, rank: int) -> Permutation:
        """Return the identity permutation of a given rank."""
        return cls(tuple(range(rank)), 1)

    @property
    def permutation(self) -> tuple[int, ...]:
        """Get the permutation."""
        return self._permutation

    @property
    def sign(self) -> int:
        """Get the sign."""
        return self._sign

    @property
    def rank(self) -> int:
        """Get the rank."""
        return len(self._permutation)

    @property
    def is_identity(self) -> bool:
        """Get whether the permutation leaves the axes (but not necessarily the sign) unchanged."""
        return self._permutation == tuple(range(self.rank))

    def __call__(self, address: Address) -> Address:
        """Apply the permutation to a block address.

        Args:
            address: Address to permute.

        Returns:
            Permuted address.
        """
        return tuple(address[p] for p in self._permutation)

    def apply(self, array: NDArray[np.floating]) -> NDArray[np.floating]:
        """Apply the permutation and sign to an array.

        Args:
            array: Array to permute.

        Returns:
            Permuted array.
        """
        return np.transpose(array, self._permutation) * self._sign

    def inverse(self) -> Permutation:
        """Return the inverse permutation."""
        perm = [0] * self.rank
        for i, p in enumerate(self._permutation):
            perm[p] = i
        return Permutation(perm, self._sign)

    def _hashable_fields(self) -> Iterable[SerialisedField]:
        """Yield fields of the hashable representation."""
        yield self.__class__.__name__
        yield self.rank
        yield from self._permutation
        yield self._sign

    def as_json(self) -> _PermutationJSON:
        """Return a JSON representation of the object.

        Returns:
            Object in JSON format.
        """
        return {
            "_type": self.__class__.__name__,
            "_module": self.__class__.__module__,
            "permutation": self._permutation,
            "sign": self._sign,
        }

    @classmethod
    def from_json(cls, data: _PermutationJSON) -> Permutation:
        """Return an object loaded from a JSON representation.

        Returns:
            Object loaded from JSON representation.
        """
        return cls(data["permutation"], data["sign"])

    def __repr__(self) -> str:
        """Return a string representation.

        Returns:
            String representation.
        """
        return f"{self.__class__.__name__}({self._permutation}, {self._sign})"

    def __add__(self, other: Permutation) -> Permutation:
        """Append permutations."""
        perm = self._permutation + tuple(p + len(self._permutation) for p in other._permutation)
        sign = self._sign * other._sign
        return Permutation(perm, sign)

    def __mul__(self, other: Permutation) -> Permutation:
        """Compose permutations.

        The product `p * q` applies `p` first and then `q`.
        """
        if self.rank != other.rank:
            raise ConfigurationError("Cannot compose permutations of different rank.")
        perm = tuple(self._permutation[p] for p in other._permutation)
        sign = self._sign * other._sign
        return Permutation(perm, sign)


class Symmetry(Serialisable):
    """Permutation symmetry group.

    Args:
        permutations: Permutations.
    """

    __slots__ = ("_permutations", "_hash")

    def __init__(self, *permutations: Permutation):
        """Initialise the symmetry."""
        if len(set(p.rank for p in permutations)) > 1:
            raise ConfigurationError("Permutations in a symmetry group must have the same rank.")
        self._permutations = permutations
        self._hash = None

    @property
    def permutations(self) -> tuple[Permutation, ...]:
        """Get the permutations."""
        return self._permutations

    @property
    def rank(self) -> int:
        """Get the rank."""
        return self._permutations[0].rank if self._permutations else 0

    def __len__(self) -> int:
        """Get the number of permutations."""
        return len(self._permutations)

    def __iter__(self) -> Iterator[Permutation]:
        """Iterate over the permutations."""
        return iter(self._permutations)

    def __call__(self, address: Address) -> Iterable[Address]:
        """Iterate over the permutations of a block address.

        Args:
            address: Address to permute.

        Yields:
            Permuted addresses.
        """
        for permutation in self._permutations:
            yield permutation(address)

    def is_closed(self) -> bool:
        """Check whether the permutations form a group under composition."""
        elements = {(p.permutation, p.sign) for p in self._permutations}
        for p, q in itertools.product(self._permutations, repeat=2):
            r = p * q
            if (r.permutation, r.sign) not in elements:
                return False
        return True

    def _hashable_fields(self) -> Iterable[SerialisedField]:
        """Yield fields of the hashable representation."""
        yield self.__class__.__name__
        yield len(self._permutations)
        for permutation in self._permutations:
            yield from permutation._hashable_fields()

    def as_json(self) -> _SymmetryJSON:
        """Return a JSON representation of the object.

        Returns:
            Object in JSON format.
        """
        return {
            "_type": self.__class__.__name__,
            "_module": self.__class__.__module__,
            "permutations": tuple(p.as_json() for p in self._permutations),
        }

    @classmethod
    def from_json(cls, data: _SymmetryJSON) -> Symmetry:
        """Return an object loaded from a JSON representation.

        Returns:
            Object loaded from JSON representation.
        """
        return cls(*[Permutation.from_json(p) for p in data["permutations"]])

    def __repr__(self) -> str:
        """Return a string representation.

        Returns:
            String representation.
        """
        return f"{self.__class__.__name__}({', '.join(map(str, self._permutations))})"

    def __mul__(self, other: Symmetry) -> Symmetry:
        """Direct product of two groups acting on consecutive sets of axes."""
        return Symmetry(*(p + q for p in self._permutations for q in other._permutations))


def closure(*permutations: Permutation) -> Symmetry:
    """Generate the group spanned by a set of permutations.

    The identity is always the first element, followed by the remaining elements in the order they
    are discovered.

    Args:
        permutations: Generators of the group.

    Returns:
        Symmetry group.

    Raises:
        ConfigurationError: If the generators imply an element with both signs, in which case the
            only tensor with this symmetry is zero.
    """
    if not permutations:
        raise ConfigurationError("At least one permutation is required.")

    elements = [Permutation.identity(permutations[0].rank)]
    signs = {elements[0].permutation: elements[0].sign}
    i = 0
    while i < len(elements):
        for generator in permutations:
            element = elements[i] * generator
            if element.permutation in signs:
                if signs[element.permutation] != element.sign:
                    raise ConfigurationError(
                        f"Permutation {element.permutation} appears with both signs."
                    )
                continue
            signs[element.permutation] = element.sign
            elements.append(element)
        i += 1

    return Symmetry(*elements)


def non_symmetric_group(n: int) -> Symmetry:
    """Generate the non-symmetric group of `n` objects.

    Args:
        n: Number of objects.

    Returns:
        Symmetry group.
    """
    return Symmetry(Permutation(tuple(range(n)), 1))


def fully_symmetric_group(n: int) -> Symmetry:
    """Generate the fully symmetric group of `n` objects.

    Args:
        n: Number of objects.

    Returns:
        Symmetry group.
    """
    return Symmetry(*[Permutation(perm, 1) for perm in itertools.permutations(range(n))])


def fully_antisymmetric_group(n: int) -> Symmetry:
    """Generate the fully antisymmetric group of `n` objects.

    Args:
        n: Number of objects.

    Returns:
        Symmetry group.
    """

    def _permutations(seq: list[int]) -> list[list[int]]:
        """Generate permutations of a sequence."""
        if not seq:
            return [[]]

        items = []
        for i, item in enumerate(_permutations(seq[:-1])):
            if i % 2:
                inds = range(len(item) + 1)
            else:
                inds = range(len(item), -1, -1)
            items += [item[:i] + seq[-1:] + item[i:] for i in inds]

        return items

    permutations = [
        Permutation(tuple(item), -1 if i % 2 else 1)
        for i, item in enumerate(_permutations(list(range(n))))
    ]

    return Symmetry(*permutations)
