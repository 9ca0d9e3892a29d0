"""
Utility functions for lineagepy.

Index handling shared by the decompression routines: interval resolution,
range-checked lookups and label factorization.
"""

import numpy as np
import pandas as pd


def resolve_interval(interval, num_cells, what="interval"):
    """Resolve a cell interval to an integer position vector.

    ``None`` means no restriction and resolves to ``arange(num_cells)``, so
    every downstream lookup goes through the same indexing path.

    Parameters
    ----------
    interval : array-like of int or None
        0-based positions of the cells in scope.
    num_cells : int
        Total number of cells.

    Returns
    -------
    ndarray of int64
    """
    if interval is None:
        return np.arange(int(num_cells), dtype=np.int64)
    idx = np.asarray(interval)
    if idx.ndim != 1:
        idx = idx.ravel()
    if idx.size == 0:
        return idx.astype(np.int64)
    if not np.issubdtype(idx.dtype, np.integer):
        if np.issubdtype(idx.dtype, np.floating) and np.all(np.mod(idx, 1) == 0):
            idx = idx.astype(np.int64)
        else:
            raise ValueError(f"{what} must contain integer positions")
    if idx.min() < 0 or idx.max() >= num_cells:
        raise IndexError(
            f"{what} contains positions outside [0, {int(num_cells)}): "
            f"min={int(idx.min())}, max={int(idx.max())}")
    return idx.astype(np.int64)


def take_checked(values, idx, what="values"):
    """Index ``values`` with ``idx``, rejecting out-of-range positions.

    Unlike plain NumPy indexing, negative positions are an error rather
    than counted from the end.
    """
    values = np.asarray(values, dtype=np.float64).ravel()
    idx = np.asarray(idx)
    if idx.size > 0 and (idx.min() < 0 or idx.max() >= values.size):
        bad = idx[(idx < 0) | (idx >= values.size)]
        raise IndexError(
            f"index {int(bad[0])} out of range for {what} of length {values.size}")
    return values[idx]


def as_float_vector(x, name="x"):
    """Convert scalar, Series or array-like to a 1-D float64 array."""
    if isinstance(x, (pd.Series, pd.DataFrame)):
        x = x.to_numpy()
    x = np.asarray(x, dtype=np.float64)
    if x.ndim > 1:
        if min(x.shape) != 1:
            raise ValueError(f"{name} must be a vector, got shape {x.shape}")
    return x.ravel()


def as_float_matrix(x, name="x"):
    """Convert array-like or DataFrame to a 2-D float64 array."""
    if isinstance(x, pd.DataFrame):
        x = x.to_numpy()
    x = np.asarray(x, dtype=np.float64)
    if x.ndim == 1:
        x = x.reshape(-1, 1)
    if x.ndim != 2:
        raise ValueError(f"{name} must be a matrix, got {x.ndim} dimensions")
    return x


def factorize_labels(x, name="labels"):
    """Convert group or batch labels to 0-based integer codes.

    Integer input is taken as codes already and returned unchanged (after a
    non-negativity check). Any other labels (strings, categoricals) are
    factorized with unused levels dropped, in order of first appearance
    or category order.

    Returns
    -------
    codes : ndarray of int64
    levels : list
    """
    if isinstance(x, (pd.Series, pd.Index)):
        x = x.array if hasattr(x.array, 'categories') else x.to_numpy()
    if isinstance(x, pd.Categorical):
        x = x.remove_unused_categories()
        if np.any(x.codes < 0):
            raise ValueError(f"NA values not allowed in {name}")
        return np.asarray(x.codes, dtype=np.int64), list(x.categories)
    arr = np.asarray(x)
    if arr.ndim != 1:
        arr = arr.ravel()
    if np.issubdtype(arr.dtype, np.integer) or np.issubdtype(arr.dtype, np.bool_):
        codes = arr.astype(np.int64)
        if codes.size and codes.min() < 0:
            raise IndexError(f"negative index in {name}")
        nlev = int(codes.max()) + 1 if codes.size else 0
        return codes, list(range(nlev))
    codes, uniques = pd.factorize(arr)
    if np.any(codes < 0):
        raise ValueError(f"NA values not allowed in {name}")
    return codes.astype(np.int64), list(uniques)
