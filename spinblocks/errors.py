"""Exceptions raised while constructing block spaces and symmetry descriptors.

All of these are raised during the one-off setup of a calculation. They indicate either invalid
input sizes or a defect in the symmetry rules of a generator, and are not meant to be recovered
from: a malformed descriptor would silently corrupt the results of the contractions that use it.
"""

from __future__ import annotations


class BlockSymmetryError(ValueError):
    """Base class for errors in the block symmetry setup."""


class ConfigurationError(BlockSymmetryError):
    """Invalid dimension, block size, policy, or malformed address or permutation."""


class CanonicalConflict(BlockSymmetryError):
    """An address holding another role was declared canonical."""


class DerivativeConflict(BlockSymmetryError):
    """An address holding another role was declared a derivative."""


class DanglingReference(BlockSymmetryError):
    """A derivative block refers to an address that is not canonical."""


class FrozenDescriptor(BlockSymmetryError):
    """A frozen descriptor was modified."""
