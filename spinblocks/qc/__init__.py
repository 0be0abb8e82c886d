"""Block descriptors of the tensors of coupled cluster theory."""
