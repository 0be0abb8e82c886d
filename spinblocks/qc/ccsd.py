"""Block spaces, descriptors, and one iteration of spin-orbital CCSD on a block-sparse engine.

The tensor contraction engine is not part of this package. Any object implementing the
`TensorEngine` protocol can be driven through an iteration.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Any, Protocol

import numpy as np

from spinblocks import _default_policy, _default_sizes, _default_strategy
from spinblocks.errors import ConfigurationError
from spinblocks.misc import Stopwatch
from spinblocks.qc.blocks import get_generator
from spinblocks.space import BlockSpace

if TYPE_CHECKING:
    from typing import Iterable, Mapping, Optional, TextIO

    from spinblocks.descriptor import BlockRole, SymmetryDescriptor
    from spinblocks.types import Address

KINDS = ("oo", "ov", "vv", "oooo", "ooov", "ovov", "oovv", "ovvv", "vvvv")
"""Kinds of the tensors in a CCSD iteration."""

TENSORS: dict[str, str] = {
    "f_oo": "oo",
    "f_ov": "ov",
    "f_vv": "vv",
    "f1_vv": "vv",
    "f2_oo": "oo",
    "f2_ov": "ov",
    "f2_vv": "vv",
    "f3_oo": "oo",
    "t1": "ov",
    "t1new": "ov",
    "d_ov": "ov",
    "e_ov": "ov",
    "i_oooo": "oooo",
    "i4_oooo": "oooo",
    "i_ooov": "ooov",
    "i2a_ooov": "ooov",
    "i_ovov": "ovov",
    "i1a_ovov": "ovov",
    "i_oovv": "oovv",
    "tt_oovv": "oovv",
    "i_ovvv": "ovvv",
    "i_vvvv": "vvvv",
    "t2": "oovv",
    "t2new": "oovv",
    "d_oovv": "oovv",
}
"""Name and kind of each tensor in a CCSD iteration."""


class TensorEngine(Protocol):
    """Protocol for a block-sparse tensor engine."""

    def create_allocator(self, path: str) -> Any:
        """Create an allocator backed by a page file."""
        ...

    def destroy_allocator(self, allocator: Any) -> None:
        """Destroy an allocator."""
        ...

    def create_tensor(self, space: BlockSpace, dtype: str, allocator: Any) -> Any:
        """Create a tensor with all blocks zero."""
        ...

    def set_canonical(self, tensor: Any, address: Address) -> None:
        """Mark a block as stored."""
        ...

    def set_derivative(
        self,
        tensor: Any,
        address: Address,
        source: Address,
        permutation: tuple[int, ...],
        phase: int,
    ) -> None:
        """Mark a block as a permuted, signed copy of a stored block."""
        ...

    def get_role(self, tensor: Any, address: Address) -> BlockRole:
        """Get the role of a block."""
        ...

    def set(self, tensor: Any, value: float) -> None:
        """Set every element of the stored blocks to a value."""
        ...

    def copy(self, dst: Any, alpha: float, src: Any, idx_dst: str, idx_src: str) -> None:
        """Compute `dst = alpha * src`, with the indices of `src` relabelled."""
        ...

    def contract(
        self,
        alpha: float,
        a: Any,
        b: Any,
        beta: float,
        c: Any,
        idx_a: str,
        idx_b: str,
        idx_c: str,
    ) -> None:
        """Compute `c = alpha * a * b + beta * c`, summing over the indices not in `idx_c`."""
        ...

    def divide(self, a: Any, b: Any, idx_a: str, idx_b: str) -> None:
        """Divide `a` element-wise by `b`."""
        ...

    def dot(self, a: Any, b: Any, idx_a: str, idx_b: str) -> float:
        """Compute the inner product of `a` and `b`."""
        ...

    def free(self, tensor: Any) -> None:
        """Release the data of a tensor."""
        ...


def build_spaces(
    nocc: int = _default_sizes["o"],
    nvir: int = _default_sizes["v"],
    block_size: Optional[int] = None,
    policy: str = _default_policy,
    kinds: Iterable[str] = KINDS,
) -> dict[str, BlockSpace]:
    """Build the block space of each kind of tensor.

    Args:
        nocc: Number of occupied spatial orbitals.
        nvir: Number of virtual spatial orbitals.
        block_size: Target block size. If `None`, the default block size is used.
        policy: Name of the partitioning policy.
        kinds: Kinds of tensors.

    Returns:
        Block space of each kind.
    """
    sizes = {"o": nocc, "v": nvir}
    return {
        k: BlockSpace.from_kinds(k, sizes, block_size=block_size, policy=policy) for k in kinds
    }


def spatial_blocks(spaces: Mapping[str, BlockSpace]) -> tuple[int, int]:
    """Get the number of spatial blocks of the occupied and virtual spaces.

    Args:
        spaces: Block space of each kind, including `"ov"`.

    Returns:
        Number of occupied and virtual spatial blocks.
    """
    if "ov" not in spaces:
        raise ConfigurationError("The 'ov' block space is required.")
    space = spaces["ov"]
    if not all(space.is_spin_symmetric(axis) for axis in range(space.rank)):
        raise ConfigurationError(f"{space} does not have spin-symmetric blocks.")
    nocc, nvir = space.nblocks
    return nocc // 2, nvir // 2


def build_descriptors(
    spaces: Mapping[str, BlockSpace],
    strategy: str = _default_strategy,
) -> dict[str, SymmetryDescriptor]:
    """Build the frozen symmetry descriptor of each kind of tensor.

    Args:
        spaces: Block space of each kind, including `"ov"`.
        strategy: Enumeration strategy, `"guarded"` or `"direct"`.

    Returns:
        Descriptor of each kind.
    """
    nocc, nvir = spatial_blocks(spaces)
    descriptors = {}
    for kinds, space in spaces.items():
        generator = get_generator(kinds, nocc, nvir)
        if generator.shape != space.nblocks:
            raise ConfigurationError(
                f"Block space {space} does not match {kinds!r} blocks of shape {generator.shape}."
            )
        descriptor = generator.generate(generator.descriptor(), strategy=strategy)
        descriptors[kinds] = descriptor.freeze()
    return descriptors


def register(engine: TensorEngine, tensor: Any, descriptor: SymmetryDescriptor) -> None:
    """Register the roles of the blocks of a tensor with the engine.

    Canonical blocks are registered before derivative blocks.

    Args:
        engine: Tensor engine.
        tensor: Tensor handle.
        descriptor: Descriptor of the tensor.
    """
    for address in descriptor.canonical_blocks():
        engine.set_canonical(tensor, address)
    for address, role in descriptor.derivative_blocks():
        assert role.reference is not None and role.permutation is not None
        engine.set_derivative(
            tensor,
            address,
            role.reference,
            role.permutation.permutation,
            role.permutation.sign,
        )


def create_tensors(
    engine: TensorEngine,
    spaces: Mapping[str, BlockSpace],
    descriptors: Mapping[str, SymmetryDescriptor],
    allocator: Any,
    dtype: str = "float64",
    tensors: Mapping[str, str] = TENSORS,
) -> dict[str, Any]:
    """Create and register the tensors of a CCSD iteration.

    Args:
        engine: Tensor engine.
        spaces: Block space of each kind.
        descriptors: Descriptor of each kind.
        allocator: Allocator handle.
        dtype: Data type of the tensors.
        tensors: Name and kind of each tensor.

    Returns:
        Handle of each tensor.
    """
    handles = {}
    for name, kinds in tensors.items():
        handles[name] = engine.create_tensor(spaces[kinds], dtype, allocator)
        register(engine, handles[name], descriptors[kinds])
    return handles


def fill_tensors(engine: TensorEngine, tensors: Mapping[str, Any], seed: int = 0) -> None:
    """Fill each tensor with a pseudo-random constant.

    Args:
        engine: Tensor engine.
        tensors: Handle of each tensor.
        seed: Seed of the random number generator.
    """
    rng = np.random.default_rng(seed)
    for name in tensors:
        engine.set(tensors[name], float(rng.random()))


def run_iteration(engine: TensorEngine, t: Mapping[str, Any]) -> float:
    """Run one iteration of CCSD.

    The new amplitudes are written to `t1new` and `t2new`, divided by the diagonal denominators
    `d_ov` and `d_oovv`.

    Args:
        engine: Tensor engine.
        t: Handle of each tensor in `TENSORS`.

    Returns:
        Correlation energy of the current amplitudes.
    """
    # f1_vv
    engine.copy(t["f1_vv"], 1.0, t["f_vv"], "ab", "ab")
    engine.contract(-0.5, t["i_oovv"], t["t2"], 1.0, t["f1_vv"], "abcd", "abed", "ec")
    engine.contract(1.0, t["i_ovvv"], t["t1"], 1.0, t["f1_vv"], "abcd", "ac", "bd")

    # f2_ov
    engine.copy(t["f2_ov"], 1.0, t["f_ov"], "ia", "ia")
    engine.contract(1.0, t["t1"], t["i_oovv"], 1.0, t["f2_ov"], "ab", "cadb", "cd")

    # f3_oo
    engine.copy(t["f3_oo"], 1.0, t["f_oo"], "ij", "ij")
    engine.contract(1.0, t["f2_ov"], t["t1"], 1.0, t["f3_oo"], "ab", "cb", "ac")
    engine.contract(0.5, t["i_oovv"], t["t2"], 1.0, t["f3_oo"], "abcd", "ebcd", "ae")
    engine.contract(1.0, t["i_ooov"], t["t1"], 1.0, t["f3_oo"], "abcd", "bd", "ac")

    # t1
    engine.copy(t["t1new"], 1.0, t["f_ov"], "ia", "ia")
    engine.contract(1.0, t["f1_vv"], t["t1"], 1.0, t["t1new"], "ab", "cb", "ca")
    engine.contract(-1.0, t["f3_oo"], t["t1"], 1.0, t["t1new"], "ab", "ac", "bc")
    engine.contract(-1.0, t["i_ovov"], t["t1"], 1.0, t["t1new"], "abcd", "cb", "ad")
    engine.contract(1.0, t["t2"], t["f2_ov"], 1.0, t["t1new"], "abcd", "bd", "ac")
    engine.contract(0.5, t["i_ovvv"], t["t2"], 1.0, t["t1new"], "abcd", "aecd", "eb")
    engine.contract(-0.5, t["i_ooov"], t["t2"], 1.0, t["t1new"], "abcd", "abed", "ce")

    # f2_oo
    engine.contract(1.0, t["t1"], t["t1"], 0.0, t["i1a_ovov"], "ab", "cd", "abcd")
    engine.copy(t["f2_oo"], 1.0, t["f_oo"], "ij", "ij")
    engine.contract(1.0, t["f_ov"], t["t1"], 1.0, t["f2_oo"], "ab", "cb", "ca")
    engine.contract(1.0, t["i_ooov"], t["t1"], 1.0, t["f2_oo"], "abcd", "bd", "ca")
    engine.contract(1.0, t["i_oovv"], t["i1a_ovov"], 1.0, t["f2_oo"], "abcd", "ecbd", "ea")
    engine.contract(0.5, t["i_oovv"], t["t2"], 1.0, t["f2_oo"], "abcd", "ebcd", "ea")

    # f2_vv
    engine.contract(1.0, t["t1"], t["t1"], 0.0, t["i1a_ovov"], "ab", "cd", "abcd")
    engine.copy(t["f2_vv"], 1.0, t["f1_vv"], "ab", "ab")
    engine.contract(-1.0, t["f_ov"], t["t1"], 1.0, t["f2_vv"], "ab", "ac", "cb")
    engine.contract(-1.0, t["i_oovv"], t["i1a_ovov"], 1.0, t["f2_vv"], "abcd", "aebd", "ec")

    # i1a_ovov
    engine.copy(t["t2new"], 1.0, t["t2"], "ijab", "ijab")
    engine.contract(2.0, t["t1"], t["t1"], 1.0, t["t2new"], "ab", "cd", "acbd")
    engine.copy(t["i1a_ovov"], 1.0, t["i_ovov"], "iajb", "iajb")
    engine.contract(-1.0, t["i_ovvv"], t["t1"], 1.0, t["i1a_ovov"], "abcd", "ed", "abec")
    engine.contract(-1.0, t["i_ooov"], t["t1"], 1.0, t["i1a_ovov"], "abcd", "be", "aecd")
    engine.contract(-0.5, t["t2new"], t["i_oovv"], 1.0, t["i1a_ovov"], "abcd", "ebcf", "edaf")

    # tt_oovv
    engine.copy(t["tt_oovv"], 1.0, t["t2"], "ijab", "ijab")
    engine.contract(0.5, t["t1"], t["t1"], 1.0, t["tt_oovv"], "ab", "cd", "acbd")

    # i4_oooo
    engine.copy(t["i4_oooo"], 1.0, t["i_oooo"], "abcd", "abcd")
    engine.contract(0.5, t["i_oovv"], t["tt_oovv"], 1.0, t["i4_oooo"], "abcd", "efcd", "efab")
    engine.contract(1.0, t["i_ooov"], t["t1"], 1.0, t["i4_oooo"], "abcd", "ed", "ceab")

    # i2a_ooov
    engine.copy(t["i2a_ooov"], 1.0, t["i_ooov"], "abcd", "abcd")
    engine.contract(-0.5, t["i4_oooo"], t["t1"], 1.0, t["i2a_ooov"], "abcd", "de", "abce")
    engine.contract(0.5, t["tt_oovv"], t["i_ovvv"], 1.0, t["i2a_ooov"], "abcd", "efcd", "abef")
    engine.contract(1.0, t["i_ovov"], t["t1"], 1.0, t["i2a_ooov"], "abcd", "ed", "ceab")

    # t2
    engine.copy(t["t2new"], 1.0, t["i_oovv"], "ijab", "ijab")
    engine.contract(1.0, t["t2"], t["f2_vv"], 1.0, t["t2new"], "abcd", "ed", "abce")
    engine.contract(-1.0, t["i2a_ooov"], t["t1"], 1.0, t["t2new"], "abcd", "ce", "abed")
    engine.contract(1.0, t["i1a_ovov"], t["t2"], 1.0, t["t2new"], "abcd", "eafd", "cefb")
    engine.contract(1.0, t["i_ovvv"], t["t1"], 1.0, t["t2new"], "abcd", "eb", "eadc")
    engine.contract(-1.0, t["t2"], t["f2_oo"], 1.0, t["t2new"], "abcd", "eb", "aecd")
    engine.contract(0.5, t["i_vvvv"], t["tt_oovv"], 1.0, t["t2new"], "abcd", "efcd", "efab")
    engine.contract(0.5, t["t2"], t["i4_oooo"], 1.0, t["t2new"], "abcd", "efab", "efcd")

    # Diagonal preconditioning
    engine.divide(t["t1new"], t["d_ov"], "ia", "ia")
    engine.divide(t["t2new"], t["d_oovv"], "ijab", "ijab")

    # energy
    engine.contract(1.0, t["i_oovv"], t["t1"], 0.0, t["e_ov"], "ijab", "jb", "ia")
    energy = engine.dot(t["f_ov"], t["t1"], "ia", "ia")
    energy += 0.25 * engine.dot(t["i_oovv"], t["t2"], "ijab", "ijab")
    energy += 0.5 * engine.dot(t["e_ov"], t["t1"], "ia", "ia")

    return float(energy)


def release_tensors(
    engine: TensorEngine,
    tensors: Mapping[str, Any],
    allocator: Optional[Any] = None,
) -> None:
    """Release the data of each tensor, and then the allocator.

    Args:
        engine: Tensor engine.
        tensors: Handle of each tensor.
        allocator: Allocator handle. If `None`, the allocator is kept.
    """
    for name in tensors:
        engine.free(tensors[name])
    if allocator is not None:
        engine.destroy_allocator(allocator)


def run_ccsd(
    engine: TensorEngine,
    nocc: int = _default_sizes["o"],
    nvir: int = _default_sizes["v"],
    block_size: Optional[int] = None,
    policy: str = _default_policy,
    strategy: str = _default_strategy,
    seed: int = 0,
    path: str = "xmpagefile",
    stdout: Optional[TextIO] = None,
) -> float:
    """Set up the tensors of a CCSD calculation and run one iteration.

    Args:
        engine: Tensor engine.
        nocc: Number of occupied spatial orbitals.
        nvir: Number of virtual spatial orbitals.
        block_size: Target block size. If `None`, the default block size is used.
        policy: Name of the partitioning policy.
        strategy: Enumeration strategy, `"guarded"` or `"direct"`.
        seed: Seed of the random number generator used to fill the tensors.
        path: Path of the page file backing the allocator.
        stdout: Stream to print timings to.

    Returns:
        Correlation energy of the initial amplitudes.
    """
    if stdout is None:
        stdout = sys.stdout
    print(f"CCSD, C1, o = {nocc}, v = {nvir}", file=stdout, flush=True)

    with Stopwatch("creating the objects", stdout=stdout):
        allocator = engine.create_allocator(path)
        spaces = build_spaces(nocc, nvir, block_size=block_size, policy=policy)
        descriptors = build_descriptors(spaces, strategy=strategy)
        tensors = create_tensors(engine, spaces, descriptors, allocator)

    with Stopwatch("filling the tensors", stdout=stdout):
        fill_tensors(engine, tensors, seed=seed)

    with Stopwatch("running one ccsd iteration", stdout=stdout):
        energy = run_iteration(engine, tensors)

    with Stopwatch("releasing the resources", stdout=stdout):
        release_tensors(engine, tensors, allocator=allocator)

    return energy
