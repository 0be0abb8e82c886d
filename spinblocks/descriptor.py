"""Registry of the roles of the blocks of a tensor."""

from __future__ import annotations

import hashlib
import json
from enum import Enum
from typing import TYPE_CHECKING

from spinblocks.base import Serialisable
from spinblocks.errors import (
    CanonicalConflict,
    ConfigurationError,
    DanglingReference,
    DerivativeConflict,
    FrozenDescriptor,
)
from spinblocks.symmetry import Permutation

if TYPE_CHECKING:
    from typing import Any, Iterable, Iterator, Optional

    from typing_extensions import Self

    from spinblocks.types import Address, SerialisedField, _BlockRoleJSON, _DescriptorJSON


class Role(Enum):
    """Enum for the role of a block."""

    ZERO = "zero"
    """The block is zero by symmetry and is not stored."""

    CANONICAL = "canonical"
    """The block is stored."""

    DERIVATIVE = "derivative"
    """The block is a permuted, signed copy of a canonical block."""


class BlockRole(Serialisable):
    """Role of a block.

    For a derivative block, the data of the block is the data of the canonical block at
    `reference` with its axes permuted and multiplied by the phase, i.e.
    `permutation.apply(block[reference])`.

    Args:
        kind: Kind of role.
        reference: Address of the canonical block, for derivative blocks.
        permutation: Permutation and phase relating the block to its canonical block, for
            derivative blocks.
    """

    __slots__ = ("_kind", "_reference", "_permutation", "_hash")

    def __init__(
        self,
        kind: Role,
        reference: Optional[Address] = None,
        permutation: Optional[Permutation] = None,
    ):
        """Initialise the object."""
        if (kind == Role.DERIVATIVE) != (reference is not None and permutation is not None):
            raise ConfigurationError("Only derivative blocks have a reference and permutation.")
        self._kind = kind
        self._reference = tuple(reference) if reference is not None else None
        self._permutation = permutation
        self._hash = None

    @classmethod
    def derivative(cls, reference: Address, permutation: Permutation) -> BlockRole:
        """Return the role of a derivative block.

        Args:
            reference: Address of the canonical block.
            permutation: Permutation and phase relating the block to its canonical block.

        Returns:
            Role.
        """
        return cls(Role.DERIVATIVE, reference, permutation)

    @property
    def kind(self) -> Role:
        """Get the kind of role."""
        return self._kind

    @property
    def reference(self) -> Optional[Address]:
        """Get the address of the canonical block."""
        return self._reference

    @property
    def permutation(self) -> Optional[Permutation]:
        """Get the permutation relating the block to its canonical block."""
        return self._permutation

    @property
    def phase(self) -> Optional[int]:
        """Get the phase relating the block to its canonical block."""
        return self._permutation.sign if self._permutation is not None else None

    @property
    def is_zero(self) -> bool:
        """Get whether the block is zero."""
        return self._kind == Role.ZERO

    @property
    def is_canonical(self) -> bool:
        """Get whether the block is canonical."""
        return self._kind == Role.CANONICAL

    @property
    def is_derivative(self) -> bool:
        """Get whether the block is a derivative."""
        return self._kind == Role.DERIVATIVE

    def _hashable_fields(self) -> Iterable[SerialisedField]:
        """Yield fields of the hashable representation."""
        yield self.__class__.__name__
        yield self._kind.value
        yield self._reference if self._reference is not None else ()
        if self._permutation is not None:
            yield from self._permutation._hashable_fields()

    def as_json(self) -> _BlockRoleJSON:
        """Return a JSON representation of the object.

        Returns:
            Object in JSON format.
        """
        return {
            "_type": self.__class__.__name__,
            "_module": self.__class__.__module__,
            "kind": self._kind.value,
            "reference": self._reference,
            "permutation": self._permutation.as_json() if self._permutation else None,
        }

    @classmethod
    def from_json(cls, data: _BlockRoleJSON) -> BlockRole:
        """Return an object loaded from a JSON representation.

        Returns:
            Object loaded from JSON representation.
        """
        kind = Role(data["kind"])
        if kind == Role.ZERO:
            return ZERO
        if kind == Role.CANONICAL:
            return CANONICAL
        reference = data["reference"]
        permutation = data["permutation"]
        if reference is None or permutation is None:
            raise ConfigurationError("Derivative blocks require a reference and permutation.")
        return cls.derivative(tuple(reference), Permutation.from_json(permutation))

    def __repr__(self) -> str:
        """Return a string representation."""
        if self._kind == Role.DERIVATIVE:
            return f"Derivative({self._reference}, {self._permutation})"
        return self._kind.name.capitalize()


ZERO = BlockRole(Role.ZERO)
CANONICAL = BlockRole(Role.CANONICAL)


class SymmetryDescriptor:
    """Registry mapping the block addresses of one tensor to their roles.

    Addresses that are never declared are zero. Each address is assigned a role once, and the
    reference of a derivative block must be canonical, so that derivatives never refer to other
    derivatives. Once populated, the descriptor can be frozen and shared read-only.

    Unlike the `Serialisable` classes, a descriptor is built up by successive declarations, so it
    is mutable until frozen. It supports `as_json`, `from_json` and equality, but is unhashable;
    use `fingerprint` for a stable identity.

    Args:
        shape: Number of blocks along each axis.
    """

    def __init__(self, shape: Iterable[int]):
        """Initialise the object."""
        self._shape = tuple(int(n) for n in shape)
        self._roles: dict[Address, BlockRole] = {}
        self._frozen = False

        if any(n <= 0 for n in self._shape):
            raise ConfigurationError(f"Number of blocks must be positive, got {self._shape}.")

    @property
    def shape(self) -> tuple[int, ...]:
        """Get the number of blocks along each axis."""
        return self._shape

    @property
    def rank(self) -> int:
        """Get the rank."""
        return len(self._shape)

    @property
    def frozen(self) -> bool:
        """Get whether the descriptor is read-only."""
        return self._frozen

    def freeze(self) -> Self:
        """Make the descriptor read-only.

        Returns:
            The descriptor itself.
        """
        self._frozen = True
        return self

    def _check_address(self, address: Address) -> Address:
        """Check a block address and return it as a tuple."""
        address = tuple(address)
        if len(address) != self.rank:
            raise ConfigurationError(f"Block address {address} does not have rank {self.rank}.")
        if any(not 0 <= x < n for x, n in zip(address, self._shape)):
            raise ConfigurationError(f"Block address {address} out of range {self._shape}.")
        return address

    def _check_writable(self) -> None:
        """Check that the descriptor is not frozen."""
        if self._frozen:
            raise FrozenDescriptor("Cannot declare blocks in a frozen descriptor.")

    def query(self, address: Address) -> BlockRole:
        """Get the role of a block.

        Args:
            address: Block address.

        Returns:
            Role of the block, `ZERO` if it was never declared.
        """
        return self._roles.get(self._check_address(address), ZERO)

    def declare_canonical(self, address: Address) -> None:
        """Declare a block as canonical.

        Args:
            address: Block address.

        Raises:
            CanonicalConflict: If the block already has a different role.
        """
        self._check_writable()
        address = self._check_address(address)
        role = self._roles.get(address, ZERO)
        if role.is_canonical:
            return
        if not role.is_zero:
            raise CanonicalConflict(f"Block {address} is already declared as {role!r}.")
        self._roles[address] = CANONICAL

    def declare_derivative(
        self,
        address: Address,
        reference: Address,
        permutation: Iterable[int] | Permutation,
        phase: Optional[int] = None,
    ) -> None:
        """Declare a block as a permuted, signed copy of a canonical block.

        Args:
            address: Block address.
            reference: Address of the canonical block.
            permutation: Permutation of the axes of the canonical block. If a `Permutation` is
                given, its sign is used as the phase unless `phase` is also given.
            phase: Phase, `+1` or `-1`.

        Raises:
            DanglingReference: If the reference is not a canonical block.
            DerivativeConflict: If the block already has a different role.
        """
        self._check_writable()
        address = self._check_address(address)
        reference = self._check_address(reference)
        if isinstance(permutation, Permutation):
            if phase is None:
                phase = permutation.sign
            permutation = permutation.permutation
        if phase is None:
            raise ConfigurationError("A phase is required for derivative blocks.")
        permutation = Permutation(permutation, phase)
        if permutation.rank != self.rank:
            raise ConfigurationError(f"Permutation {permutation} does not have rank {self.rank}.")

        if not self._roles.get(reference, ZERO).is_canonical:
            raise DanglingReference(
                f"Block {address} refers to {reference}, which is not a canonical block."
            )

        new = BlockRole.derivative(reference, permutation)
        role = self._roles.get(address, ZERO)
        if role == new:
            return
        if not role.is_zero:
            raise DerivativeConflict(f"Block {address} is already declared as {role!r}.")
        self._roles[address] = new

    def resolve(self, address: Address) -> Optional[tuple[Address, Permutation]]:
        """Resolve a block to its canonical block.

        Args:
            address: Block address.

        Returns:
            Address of the canonical block and the permutation mapping the canonical block onto
            this block, or `None` if the block is zero.
        """
        address = self._check_address(address)
        role = self._roles.get(address, ZERO)
        if role.is_zero:
            return None
        if role.is_canonical:
            return address, Permutation.identity(self.rank)
        assert role.reference is not None and role.permutation is not None
        return role.reference, role.permutation

    def canonical_blocks(self) -> Iterator[Address]:
        """Iterate over the canonical blocks, in the order they were declared."""
        for address, role in self._roles.items():
            if role.is_canonical:
                yield address

    def derivative_blocks(self) -> Iterator[tuple[Address, BlockRole]]:
        """Iterate over the derivative blocks, in the order they were declared."""
        for address, role in self._roles.items():
            if role.is_derivative:
                yield address, role

    def count(self, kind: Role) -> int:
        """Count the blocks with a given role.

        Args:
            kind: Kind of role.

        Returns:
            Number of blocks.
        """
        if kind == Role.ZERO:
            total = 1
            for n in self._shape:
                total *= n
            return total - len(self._roles)
        return sum(1 for role in self._roles.values() if role.kind == kind)

    def items(self) -> Iterator[tuple[Address, BlockRole]]:
        """Iterate over the declared blocks and their roles."""
        return iter(self._roles.items())

    def __len__(self) -> int:
        """Get the number of declared blocks."""
        return len(self._roles)

    def __iter__(self) -> Iterator[Address]:
        """Iterate over the declared blocks."""
        return iter(self._roles)

    def __contains__(self, address: Any) -> bool:
        """Check whether a block is declared."""
        return tuple(address) in self._roles

    def __eq__(self, other: Any) -> bool:
        """Check whether two descriptors declare the same roles, regardless of order."""
        if not isinstance(other, SymmetryDescriptor):
            return False
        return self._shape == other._shape and self._roles == other._roles

    __hash__ = None  # type: ignore[assignment]

    def as_json(self) -> _DescriptorJSON:
        """Return a JSON representation of the object.

        Returns:
            Object in JSON format. Blocks are sorted by address.
        """
        return {
            "_type": self.__class__.__name__,
            "_module": self.__class__.__module__,
            "shape": self._shape,
            "blocks": [(address, self._roles[address].as_json()) for address in sorted(self._roles)],
        }

    @classmethod
    def from_json(cls, data: _DescriptorJSON) -> SymmetryDescriptor:
        """Return an object loaded from a JSON representation.

        Canonical blocks are declared before derivative blocks, so that every reference can be
        checked.

        Returns:
            Object loaded from JSON representation.
        """
        descriptor = cls(data["shape"])
        roles = [(tuple(address), BlockRole.from_json(role)) for address, role in data["blocks"]]
        for address, role in roles:
            if role.is_canonical:
                descriptor.declare_canonical(address)
        for address, role in roles:
            if role.is_derivative:
                assert role.reference is not None and role.permutation is not None
                descriptor.declare_derivative(address, role.reference, role.permutation)
        return descriptor

    def fingerprint(self) -> str:
        """Return a digest of the declared roles.

        Descriptors built independently from the same inputs, for example on different processes,
        have the same fingerprint.

        Returns:
            Hexadecimal SHA-256 digest.
        """
        data = self.as_json()
        string = json.dumps([data["shape"], data["blocks"]], sort_keys=True)
        return hashlib.sha256(string.encode()).hexdigest()

    def __repr__(self) -> str:
        """Return a string representation."""
        return (
            f"{self.__class__.__name__}(shape={self._shape}, "
            f"canonical={self.count(Role.CANONICAL)}, derivative={self.count(Role.DERIVATIVE)})"
        )
