"""Configuration file for `pytest`."""

import hashlib
import inspect
import itertools

import numpy as np
import pytest


class Helper:
    """Helper class for tests."""

    @staticmethod
    def random(shape, seed=None):
        """Generate a deterministic array that appears random.

        Each call to this function will return a different array, but the array will always be
        the same between runs for a given call (as long as the code is not modified). Alternatively,
        a seed can be provided to generate the same array across different calls.
        """
        if seed is None:
            caller = inspect.currentframe().f_back
            location = ":".join(
                [
                    caller.f_code.co_filename.split("/")[-1],
                    caller.f_code.co_name,
                    str(caller.f_lineno),
                ]
            )
            seed = int(hashlib.sha256(location.encode()).hexdigest(), 16) % int(1e10)
        size = np.prod(shape)
        array = np.cos(np.arange(size) + seed).reshape(shape)
        return array

    @staticmethod
    def fingerprint(array):
        """Find the fingerprint of an array."""
        return np.cos(np.arange(array.size)) @ array.ravel()

    @staticmethod
    def spin_mask(halves):
        """Get the mask of the spin-conserving elements of a spin-orbital tensor.

        The first half of the axes is the bra and the second half the ket, and each axis of length
        `2 * n` has the alpha orbitals first.
        """
        rank = len(halves)
        mask = np.zeros([2 * n for n in halves], dtype=bool)
        for spins in itertools.product((0, 1), repeat=rank):
            if sorted(spins[: rank // 2]) != sorted(spins[rank // 2 :]):
                continue
            slices = tuple(slice(s * n, (s + 1) * n) for s, n in zip(spins, halves))
            mask[slices] = True
        return mask

    @staticmethod
    def spin_orbital(halves, symmetry, seed=0):
        """Generate a random spin-orbital tensor with a given permutational symmetry.

        The tensor conserves spin and has identical alpha and beta spatial parts.
        """
        spatial = Helper.random(halves, seed=seed)
        array = np.tile(spatial, [2] * len(halves)) * Helper.spin_mask(halves)
        return sum(p.apply(array) for p in symmetry)


@pytest.fixture
def helper():
    """Fixture for the helper class."""
    return Helper()
