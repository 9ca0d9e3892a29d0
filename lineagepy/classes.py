"""
Core data classes for lineagepy.

Model-global specifications (one per parameter family) and the ZINBModel
container, as dict subclasses with attribute access and display.
"""

import numpy as np
from copy import deepcopy


class _LineageBase(dict):
    """Base class providing dict-like access and display."""

    def __getattr__(self, name):
        try:
            return self[name]
        except KeyError:
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")

    def __setattr__(self, name, value):
        self[name] = value

    def __delattr__(self, name):
        try:
            del self[name]
        except KeyError:
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")

    def __repr__(self):
        cls = type(self).__name__
        components = list(self.keys())
        return f"{cls}\nComponents: {', '.join(components)}"

    def _copy(self):
        """Deep copy of the object."""
        return deepcopy(self)


class _ParamModelGlobal(_LineageBase):
    """Shared display for mean and dispersion model-global objects."""

    def __repr__(self):
        cls = type(self).__name__
        kind = self.get('str_model')
        ncells = self.get('num_cells')
        nconf = self.get('n_confounders', 0)
        s = f"{cls} '{kind}' for {ncells} cells, {nconf} confounder(s)"
        if self.get('n_mix') is not None:
            s += f", {self['n_mix']} mixture component(s)"
        return s + f"\nComponents: {', '.join(self.keys())}"


class MuModelGlobal(_ParamModelGlobal):
    """Meta-data of the gene-wise mean parameter models.

    Components
    ----------
    str_model : str
        'constant', 'impulse', 'spline', 'groups' or 'mixture'.
    num_cells, num_genes : int
        Problem dimensions.
    spline_basis : ndarray (num_cells x n_basis) or None
    idx_groups : int ndarray (num_cells,) or None
    continuous_covar : ndarray (num_cells,) or None
        Pseudotime of each cell, used by the impulse model.
    idx_batch_assign : list of int ndarray (num_cells,) or None
        One batch assignment per confounder.
    n_confounders : int
    n_mix : int or None
    """


class DispModelGlobal(_ParamModelGlobal):
    """Meta-data of the gene-wise dispersion parameter models.

    Same components as :class:`MuModelGlobal`.
    """


class DropModelGlobal(_LineageBase):
    """Meta-data of the cell-wise dropout rate models."""

    def __repr__(self):
        cls = type(self).__name__
        return (f"{cls} '{self.get('str_model')}' for {self.get('num_cells')} cells "
                f"and {self.get('num_genes')} genes\n"
                f"Components: {', '.join(self.keys())}")


class ZINBModel(_LineageBase):
    """Compressed ZINB model of a whole dataset.

    Holds the fitted coefficient matrices of the three parameter families
    together with their model-global objects.
    """

    @property
    def shape(self):
        """(num_genes, num_cells) of the decompressed parameter matrices."""
        g = self.get('mu_model_global')
        if g is None:
            return None
        return (g['num_genes'], g['num_cells'])

    def __repr__(self):
        cls = type(self).__name__
        s = self.shape
        mu_kind = self['mu_model_global']['str_model'] if 'mu_model_global' in self else None
        disp_kind = self['disp_model_global']['str_model'] if 'disp_model_global' in self else None
        drop_kind = self['drop_model_global']['str_model'] if 'drop_model_global' in self else None
        head = f"{cls} with {s[0]} genes and {s[1]} cells" if s is not None else cls
        return (f"{head}\nMean model: {mu_kind}, dispersion model: {disp_kind}, "
                f"dropout model: {drop_kind}\n"
                f"Components: {', '.join(self.keys())}")

    def head(self, n=5):
        """First n rows of the mean model coefficients."""
        if 'mu_model' in self:
            return np.asarray(self['mu_model'])[:n]
        return None
