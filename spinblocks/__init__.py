"""
*****************************************************************
spinblocks: Symmetry-adapted block descriptors for spin orbitals
*****************************************************************

The `spinblocks` package partitions the axes of spin-orbital tensors into blocks and describes
which blocks of a coupled cluster tensor are stored and which are permuted, signed copies of the
stored ones, for consumption by a block-sparse tensor contraction engine.


Installation
------------

        pip install .

"""  # noqa: D205, D212, D415

from __future__ import annotations

__version__ = "0.1.0"

_default_sizes: dict[str, int] = {
    "o": 10,  # occupied, spatial orbitals
    "v": 40,  # virtual, spatial orbitals
}

_default_block_size = 32
_default_policy = "balanced"
_default_strategy = "guarded"
