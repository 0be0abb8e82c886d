import numpy as np
import pytest

from spinblocks.dense import assemble, extract, get_block
from spinblocks.descriptor import SymmetryDescriptor
from spinblocks.errors import ConfigurationError
from spinblocks.space import BlockSpace


def _antisymmetric(helper, n):
    array = helper.random((n, n))
    return array - array.T


def test_extract_assemble(helper):
    space = BlockSpace.create((5, 5)).split(0, 2).split(1, 2)
    desc = SymmetryDescriptor((2, 2))
    desc.declare_canonical((0, 0))
    desc.declare_canonical((0, 1))
    desc.declare_canonical((1, 1))
    desc.declare_derivative((1, 0), (0, 1), (1, 0), -1)

    array = _antisymmetric(helper, 5)
    blocks = extract(array, space, desc)
    assert set(blocks) == {(0, 0), (0, 1), (1, 1)}
    assert blocks[(0, 1)].shape == (2, 3)
    assert np.allclose(get_block(blocks, desc, (1, 0)), array[2:, :2])
    assert np.allclose(assemble(blocks, space, desc), array)

    # Extracted blocks are copies
    blocks[(0, 0)][:] = 0.0
    assert not np.allclose(array[:2, :2], 0.0)


def test_assemble_zero_blocks(helper):
    space = BlockSpace.create((4, 4)).split(0, 2).split(1, 2)
    desc = SymmetryDescriptor((2, 2))
    desc.declare_canonical((0, 0))
    desc.declare_derivative((1, 1), (0, 0), (0, 1), 1)

    array = np.zeros((4, 4))
    array[:2, :2] = helper.random((2, 2))
    array[2:, 2:] = array[:2, :2]
    blocks = extract(array, space, desc)
    assert get_block(blocks, desc, (0, 1)) is None
    assert np.allclose(assemble(blocks, space, desc), array)


def test_mismatch(helper):
    space = BlockSpace.create((4, 4)).split(0, 2)
    desc = SymmetryDescriptor((2, 2))
    with pytest.raises(ConfigurationError):
        extract(np.zeros((4, 4)), space, desc)
    with pytest.raises(ConfigurationError):
        assemble({}, space, desc)

    space = space.split(1, 2)
    with pytest.raises(ConfigurationError):
        extract(np.zeros((4, 5)), space, desc)
