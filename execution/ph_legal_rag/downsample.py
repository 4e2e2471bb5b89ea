"""
Vector Dimension Reconciler

Deterministic block-averaging downsample shared by ingestion and query code,
so document vectors and query vectors land in the same coordinate space even
when the embedding model's native dimension differs from the store's.
"""

import logging
from typing import Optional, Sequence

import numpy as np

from .exceptions import DimensionMismatch

logger = logging.getLogger(__name__)


def reconcile(vector: Sequence[float], target_dim: Optional[int]) -> list[float]:
    """
    Reduce ``vector`` to ``target_dim`` elements by block averaging.

    Block ``i`` covers original indices
    ``floor(i*n/target) .. floor((i+1)*n/target)`` (end exclusive); each output
    element is the mean of its block. A zero-width block takes the nearest
    original element. If ``target_dim`` is missing, not positive, or not
    smaller than the input, an independent copy is returned unchanged (never
    pads).

    Args:
        vector: Input embedding
        target_dim: Desired dimensionality

    Returns:
        New list of floats
    """
    values = np.asarray(vector, dtype=float)
    orig_dim = values.shape[0]
    if not target_dim or target_dim <= 0 or target_dim >= orig_dim:
        return values.tolist()

    out = np.zeros(target_dim, dtype=float)
    for i in range(target_dim):
        start = (i * orig_dim) // target_dim
        end = ((i + 1) * orig_dim) // target_dim
        if end <= start:
            out[i] = values[min(start, orig_dim - 1)]
            continue
        out[i] = values[start:end].mean()
    return out.tolist()


def prepare_query_vector(
    vector: Sequence[float],
    store_dim: Optional[int],
    allow_downsample: bool = True,
) -> list[float]:
    """
    Bring a query embedding into the store's declared dimension.

    Raises:
        DimensionMismatch: dimensions differ and downsampling is disabled
    """
    if not store_dim or store_dim <= 0 or len(vector) == store_dim:
        return list(vector)
    if not allow_downsample:
        raise DimensionMismatch(len(vector), store_dim)
    logger.info(f"Downsampling query embedding {len(vector)} -> {store_dim}")
    return reconcile(vector, store_dim)
