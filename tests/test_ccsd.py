import io
import itertools
import warnings

import numpy as np
import pytest

from spinblocks.dense import assemble, extract, get_block
from spinblocks.descriptor import SymmetryDescriptor
from spinblocks.errors import ConfigurationError
from spinblocks.qc.ccsd import (
    KINDS,
    TENSORS,
    build_descriptors,
    build_spaces,
    create_tensors,
    fill_tensors,
    register,
    release_tensors,
    run_ccsd,
    run_iteration,
    spatial_blocks,
)
from spinblocks.qc.spin import to_address
from spinblocks.space import BlockSpace


class DenseTensor:
    """Tensor stored as a dense array, with the roles of its blocks."""

    def __init__(self, space, dtype):
        self.space = space
        self.dtype = dtype
        self.data = np.zeros(space.dims, dtype=dtype)
        self.descriptor = SymmetryDescriptor(space.nblocks)
        self.freed = False


class DenseEngine:
    """Tensor engine operating on dense arrays with `numpy.einsum`.

    After each write only the canonical blocks are kept, and the derivative blocks are rebuilt
    from them, so that blocks which are zero by symmetry stay zero.
    """

    def __init__(self):
        self.allocators = []
        self.tensors = []

    def _store(self, tensor, array):
        blocks = extract(array, tensor.space, tensor.descriptor)
        tensor.data = assemble(blocks, tensor.space, tensor.descriptor, dtype=tensor.dtype)

    def create_allocator(self, path):
        self.allocators.append(path)
        return path

    def destroy_allocator(self, allocator):
        self.allocators.remove(allocator)

    def create_tensor(self, space, dtype, allocator):
        assert allocator in self.allocators
        tensor = DenseTensor(space, dtype)
        self.tensors.append(tensor)
        return tensor

    def set_canonical(self, tensor, address):
        tensor.descriptor.declare_canonical(address)

    def set_derivative(self, tensor, address, source, permutation, phase):
        tensor.descriptor.declare_derivative(address, source, permutation, phase)

    def get_role(self, tensor, address):
        return tensor.descriptor.query(address)

    def set(self, tensor, value):
        blocks = {
            address: np.full(tensor.space.block_shape(address), value, dtype=tensor.dtype)
            for address in tensor.descriptor.canonical_blocks()
        }
        tensor.data = assemble(blocks, tensor.space, tensor.descriptor, dtype=tensor.dtype)

    def copy(self, dst, alpha, src, idx_dst, idx_src):
        self._store(dst, alpha * np.einsum(f"{idx_src}->{idx_dst}", src.data))

    def contract(self, alpha, a, b, beta, c, idx_a, idx_b, idx_c):
        ab = np.einsum(f"{idx_a},{idx_b}->{idx_c}", a.data, b.data)
        self._store(c, alpha * ab + beta * c.data)

    def divide(self, a, b, idx_a, idx_b):
        denominator = np.einsum(f"{idx_b}->{idx_a}", b.data)
        quotient = np.divide(a.data, denominator, out=np.zeros_like(a.data), where=denominator != 0)
        self._store(a, quotient)

    def dot(self, a, b, idx_a, idx_b):
        return float(np.einsum(f"{idx_a},{idx_b}->", a.data, b.data))

    def free(self, tensor):
        assert not tensor.freed
        tensor.freed = True


class RecordingEngine(DenseEngine):
    """Dense engine that records the name of each call."""

    def __init__(self):
        super().__init__()
        self.calls = []

    def __getattribute__(self, name):
        attr = super().__getattribute__(name)
        if callable(attr) and not name.startswith("_"):
            self.calls.append(name)
        return attr


def _setup(engine, nocc=3, nvir=4, block_size=2, strategy="guarded"):
    spaces = build_spaces(nocc, nvir, block_size=block_size)
    descriptors = build_descriptors(spaces, strategy=strategy)
    allocator = engine.create_allocator("pagefile")
    tensors = create_tensors(engine, spaces, descriptors, allocator)
    return spaces, descriptors, allocator, tensors


def test_tensors():
    assert len(TENSORS) == 25
    assert set(TENSORS.values()) == set(KINDS)
    for name in ("t1", "t1new", "d_ov", "e_ov", "f_ov"):
        assert TENSORS[name] == "ov"
    for name in ("t2", "t2new", "d_oovv", "i_oovv", "tt_oovv"):
        assert TENSORS[name] == "oovv"


def test_defaults():
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        spaces = build_spaces()
    assert set(spaces) == set(KINDS)
    assert spaces["ov"].dims == (20, 80)
    assert spaces["ov"].nblocks == (2, 4)
    assert spatial_blocks(spaces) == (1, 2)

    descriptors = build_descriptors(spaces)
    assert set(descriptors) == set(KINDS)
    for kinds, descriptor in descriptors.items():
        assert descriptor.frozen
        assert descriptor.shape == spaces[kinds].nblocks
        assert len(list(descriptor.canonical_blocks())) > 0


@pytest.mark.parametrize("policy", ["balanced", "uniform"])
def test_strategies(policy):
    spaces = build_spaces(5, 7, block_size=2, policy=policy)
    guarded = build_descriptors(spaces, strategy="guarded")
    direct = build_descriptors(spaces, strategy="direct")
    for kinds in KINDS:
        assert guarded[kinds] == direct[kinds]
        assert guarded[kinds].fingerprint() == direct[kinds].fingerprint()


def test_fingerprints():
    a = build_descriptors(build_spaces(4, 6, block_size=3))
    b = build_descriptors(build_spaces(4, 6, block_size=3))
    assert {k: d.fingerprint() for k, d in a.items()} == {k: d.fingerprint() for k, d in b.items()}


def test_spaces_errors():
    spaces = build_spaces(3, 4, block_size=2)
    with pytest.raises(ConfigurationError):
        spatial_blocks({"oo": spaces["oo"]})
    with pytest.raises(ConfigurationError):
        spatial_blocks({"ov": BlockSpace((6, 8), [(2,), (4,)])})

    mismatched = dict(spaces)
    mismatched["oovv"] = build_spaces(3, 4, block_size=1, kinds=("oovv",))["oovv"]
    with pytest.raises(ConfigurationError):
        build_descriptors(mismatched)

    with pytest.raises(ConfigurationError):
        build_spaces(0, 4)
    with pytest.raises(ConfigurationError):
        build_spaces(3, 4, block_size=0)
    with pytest.raises(ConfigurationError):
        build_spaces(3, 4, policy="random")
    with pytest.raises(ConfigurationError):
        build_descriptors(spaces, strategy="random")


def test_register():
    engine = DenseEngine()
    spaces, descriptors, allocator, tensors = _setup(engine)
    assert len(engine.tensors) == len(TENSORS)

    for name, kinds in TENSORS.items():
        tensor = tensors[name]
        assert tensor.space == spaces[kinds]
        assert tensor.descriptor == descriptors[kinds]
        for address in itertools.product(*[range(n) for n in spaces[kinds].nblocks]):
            assert engine.get_role(tensor, address) == descriptors[kinds].query(address)

    release_tensors(engine, tensors, allocator)
    assert all(tensor.freed for tensor in engine.tensors)
    assert engine.allocators == []


def test_register_order():
    spaces = build_spaces(2, 3, block_size=1)
    descriptor = build_descriptors(spaces)["oovv"]
    engine = RecordingEngine()
    allocator = engine.create_allocator("pagefile")
    tensor = engine.create_tensor(spaces["oovv"], "float64", allocator)
    engine.calls.clear()

    register(engine, tensor, descriptor)
    ncanonical = len(list(descriptor.canonical_blocks()))
    assert engine.calls[:ncanonical] == ["set_canonical"] * ncanonical
    assert set(engine.calls[ncanonical:]) == {"set_derivative"}


def test_fill_tensors():
    engine = DenseEngine()
    _, _, _, a = _setup(engine)
    _, _, _, b = _setup(engine)
    fill_tensors(engine, a, seed=7)
    fill_tensors(engine, b, seed=7)
    for name in TENSORS:
        assert np.allclose(a[name].data, b[name].data)
        assert np.linalg.norm(a[name].data) > 0

    fill_tensors(engine, b, seed=8)
    assert not np.allclose(a["t1"].data, b["t1"].data)


def test_dense_engine_blocks():
    engine = DenseEngine()
    spaces, _, _, t = _setup(engine)
    fill_tensors(engine, t, seed=5)
    run_iteration(engine, t)

    for name, tensor in t.items():
        blocks = extract(tensor.data, tensor.space, tensor.descriptor)
        grid = itertools.product(*[range(n) for n in tensor.space.nblocks])
        for address in grid:
            block = tensor.data[tensor.space.slices(address)]
            expected = get_block(blocks, tensor.descriptor, address)
            if expected is None:
                assert np.all(block == 0), (name, address)
            else:
                assert np.allclose(block, expected), (name, address)

    # Opposite-spin products of t1 have no place in the ovov blocks
    nocc, nvir = spatial_blocks(spaces)
    aabb = to_address((0, 0, 0, 0), "aabb", (nocc, nvir, nocc, nvir))
    assert t["i1a_ovov"].descriptor.resolve(aabb) is None
    assert np.all(t["i1a_ovov"].data[spaces["ovov"].slices(aabb)] == 0)


def test_run_iteration():
    engine = DenseEngine()
    _, _, allocator, t = _setup(engine)
    fill_tensors(engine, t, seed=0)

    f_ov = t["f_ov"].data.copy()
    t1 = t["t1"].data.copy()
    t2 = t["t2"].data.copy()
    v = t["i_oovv"].data.copy()

    energy = run_iteration(engine, t)
    expected = np.einsum("ia,ia->", f_ov, t1)
    expected += 0.25 * np.einsum("ijab,ijab->", v, t2)
    expected += 0.5 * np.einsum("ijab,ia,jb->", v, t1, t1)
    assert isinstance(energy, float)
    assert np.isclose(energy, expected)

    # Inputs are not modified
    assert np.allclose(t["t1"].data, t1)
    assert np.allclose(t["t2"].data, t2)

    for name in ("t1new", "t2new"):
        assert np.all(np.isfinite(t[name].data))
        assert np.linalg.norm(t[name].data) > 0

    release_tensors(engine, t, allocator)


def test_run_iteration_strategies():
    energies = []
    for strategy in ("guarded", "direct"):
        engine = DenseEngine()
        _, _, _, t = _setup(engine, strategy=strategy)
        fill_tensors(engine, t, seed=3)
        energies.append(run_iteration(engine, t))
    assert np.isclose(energies[0], energies[1])


def test_run_ccsd():
    engine = RecordingEngine()
    stdout = io.StringIO()
    energy = run_ccsd(engine, nocc=2, nvir=3, block_size=2, stdout=stdout)
    assert np.isfinite(energy)

    header, *lines = stdout.getvalue().splitlines()
    assert header == "CCSD, C1, o = 2, v = 3"
    titles = [line.split(":")[0] for line in lines]
    assert titles == [
        "creating the objects",
        "filling the tensors",
        "running one ccsd iteration",
        "releasing the resources",
    ]
    assert all(line.endswith(" s") for line in lines)

    assert engine.calls.count("create_tensor") == len(TENSORS)
    assert engine.calls.count("free") == len(TENSORS)
    assert engine.calls.count("divide") == 2
    assert engine.calls[-1] == "destroy_allocator"
    assert engine.allocators == []
