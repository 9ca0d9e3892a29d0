"""
Model-global construction, validation, and the ZINBModel container.

The model-global objects carry the static experiment design (cell
covariates, spline basis, group and batch assignments) that tells the
decompression routines how a gene's compressed coefficients expand into
one value per cell.
"""

import numpy as np
import pandas as pd
import warnings

from .classes import MuModelGlobal, DispModelGlobal, DropModelGlobal, ZINBModel
from .errors import ModelSpecificationError
from .utils import as_float_vector, as_float_matrix, factorize_labels

PARAM_MODEL_KINDS = ('constant', 'impulse', 'spline', 'groups', 'mixture')
DROP_MODEL_KINDS = ('logistic', 'logistic_of_mean')
N_IMPULSE_PARAMS = 7

_KIND_ALIASES = {
    'splines': 'spline',
    'MM': 'mixture',
    'logistic_ofMu': 'logistic_of_mean',
}


def normalize_kind(kind, allowed, field="str_model"):
    """Map a kind tag (or its historical alias) onto its canonical name."""
    if not isinstance(kind, str):
        raise ModelSpecificationError(f"{field}={kind!r} not recognised")
    kind = _KIND_ALIASES.get(kind, kind)
    if kind not in allowed:
        raise ModelSpecificationError(
            f"{field}={kind!r} not recognised, must be one of {', '.join(allowed)}")
    return kind


def _check_cell_vector(x, num_cells, name):
    x = as_float_vector(x, name)
    if len(x) != num_cells:
        raise ValueError(f"Length of '{name}' must equal num_cells ({num_cells})")
    if not np.all(np.isfinite(x)):
        raise ValueError(f"'{name}' must contain finite values")
    return x


def _batch_assign_list(batch_assign):
    """Split a batch assignment argument into one label vector per confounder."""
    if batch_assign is None:
        return []
    if isinstance(batch_assign, pd.DataFrame):
        return [batch_assign[col] for col in batch_assign.columns]
    if isinstance(batch_assign, (pd.Series, pd.Categorical)):
        return [batch_assign]
    if isinstance(batch_assign, np.ndarray):
        if batch_assign.ndim == 1:
            return [batch_assign]
        return [batch_assign[:, c] for c in range(batch_assign.shape[1])]
    return list(batch_assign)


def _make_param_model_global(cls, family, kind, num_cells, num_genes,
                             spline_basis, groups, continuous_covar,
                             batch_assign, n_mix):
    kind = normalize_kind(kind, PARAM_MODEL_KINDS, f"{family} model")
    num_cells = int(num_cells)
    if num_cells <= 0:
        raise ValueError("num_cells must be positive")

    g = cls()
    g['str_model'] = kind
    g['num_cells'] = num_cells
    g['num_genes'] = None if num_genes is None else int(num_genes)

    # Kind-specific payload
    g['spline_basis'] = None
    if spline_basis is not None:
        basis = as_float_matrix(spline_basis, 'spline_basis')
        if basis.shape[0] != num_cells:
            raise ValueError(
                f"spline_basis has {basis.shape[0]} rows but num_cells={num_cells}")
        if not np.all(np.isfinite(basis)):
            raise ValueError("'spline_basis' must contain finite values")
        g['spline_basis'] = basis
    elif kind == 'spline':
        raise ModelSpecificationError(f"{family} model 'spline' requires spline_basis")

    g['idx_groups'] = None
    g['n_groups'] = None
    if groups is not None:
        codes, levels = factorize_labels(groups, 'groups')
        if len(codes) != num_cells:
            raise ValueError(f"Length of 'groups' must equal num_cells ({num_cells})")
        empty = np.flatnonzero(np.bincount(codes, minlength=len(levels)) == 0)
        if len(empty) > 0:
            warnings.warn(f"{len(empty)} group level(s) have no cells assigned")
        g['idx_groups'] = codes
        g['n_groups'] = len(levels)
        g['group_levels'] = levels
    elif kind == 'groups':
        raise ModelSpecificationError(f"{family} model 'groups' requires groups")

    g['continuous_covar'] = None
    if continuous_covar is not None:
        g['continuous_covar'] = _check_cell_vector(continuous_covar, num_cells,
                                                   'continuous_covar')
    elif kind == 'impulse':
        raise ModelSpecificationError(
            f"{family} model 'impulse' requires continuous_covar")

    if n_mix is not None:
        n_mix = int(n_mix)
        if n_mix < 1:
            raise ValueError("n_mix must be a positive integer")
    elif kind == 'mixture':
        raise ModelSpecificationError(f"{family} model 'mixture' requires n_mix")
    g['n_mix'] = n_mix

    # Confounders
    assign = _batch_assign_list(batch_assign)
    if len(assign) == 0:
        g['idx_batch_assign'] = None
        g['n_confounders'] = 0
        g['n_batches'] = []
        return g

    idx_assign = []
    n_batches = []
    for conf, labels in enumerate(assign):
        codes, levels = factorize_labels(labels, f'batch_assign[{conf}]')
        if len(codes) != num_cells:
            raise ValueError(
                f"Length of batch_assign[{conf}] must equal num_cells ({num_cells})")
        if len(levels) < 2:
            warnings.warn(
                f"Confounder {conf} has a single batch level and is not identifiable")
        idx_assign.append(codes)
        n_batches.append(len(levels))
    g['idx_batch_assign'] = idx_assign
    g['n_confounders'] = len(idx_assign)
    g['n_batches'] = n_batches
    return g


def make_mu_model_global(kind, num_cells, num_genes=None, spline_basis=None,
                         groups=None, continuous_covar=None, batch_assign=None,
                         n_mix=None):
    """Construct the meta-data of the gene-wise mean models.

    Parameters
    ----------
    kind : str
        'constant', 'impulse', 'spline', 'groups' or 'mixture'
        ('splines' and 'MM' are accepted as aliases).
    num_cells : int
        Number of cells.
    num_genes : int, optional
        Number of genes.
    spline_basis : array-like (num_cells x n_basis), optional
        Spline basis evaluated at each cell; required for 'spline'.
    groups : array-like (num_cells,), optional
        Group of each cell, either 0-based integer codes or labels;
        required for 'groups'.
    continuous_covar : array-like (num_cells,), optional
        Pseudotime of each cell; required for 'impulse'.
    batch_assign : list of array-like, array, or DataFrame, optional
        Batch of each cell, one vector (or DataFrame column) per confounder.
    n_mix : int, optional
        Number of mixture components; required for 'mixture'.

    Returns
    -------
    MuModelGlobal
    """
    return _make_param_model_global(MuModelGlobal, 'mean', kind, num_cells,
                                    num_genes, spline_basis, groups,
                                    continuous_covar, batch_assign, n_mix)


def make_disp_model_global(kind, num_cells, num_genes=None, spline_basis=None,
                           groups=None, continuous_covar=None, batch_assign=None,
                           n_mix=None):
    """Construct the meta-data of the gene-wise dispersion models.

    Takes the same arguments as :func:`make_mu_model_global`.

    Returns
    -------
    DispModelGlobal
    """
    return _make_param_model_global(DispModelGlobal, 'dispersion', kind,
                                    num_cells, num_genes, spline_basis, groups,
                                    continuous_covar, batch_assign, n_mix)


def make_drop_model_global(kind, num_cells, num_genes, n_const_predictors=0):
    """Construct the meta-data of the cell-wise dropout models.

    Parameters
    ----------
    kind : str
        'logistic' or 'logistic_of_mean' ('logistic_ofMu' accepted).
    num_cells, num_genes : int
    n_const_predictors : int
        Number of constant (gene-specific) predictors besides the offset
        and the log mean.

    Returns
    -------
    DropModelGlobal
    """
    g = DropModelGlobal()
    g['str_model'] = normalize_kind(kind, DROP_MODEL_KINDS, 'dropout model')
    g['num_cells'] = int(num_cells)
    g['num_genes'] = int(num_genes)
    if int(n_const_predictors) < 0:
        raise ValueError("n_const_predictors must be non-negative")
    g['n_const_predictors'] = int(n_const_predictors)
    return g


def valid_model_global(g):
    """Check and fill standard components of a model-global object."""
    if 'str_model' not in g:
        raise ModelSpecificationError("No str_model component")
    if 'num_cells' not in g or g['num_cells'] is None:
        raise ValueError("No num_cells component")
    if isinstance(g, DropModelGlobal):
        g['str_model'] = normalize_kind(g['str_model'], DROP_MODEL_KINDS,
                                        'dropout model')
        if 'num_genes' not in g or g['num_genes'] is None:
            raise ValueError("No num_genes component")
        g.setdefault('n_const_predictors', 0)
        return g

    g['str_model'] = normalize_kind(g['str_model'], PARAM_MODEL_KINDS)
    num_cells = int(g['num_cells'])
    for key in ('spline_basis', 'idx_groups', 'continuous_covar', 'n_mix',
                'num_genes', 'n_groups'):
        g.setdefault(key, None)
    if g.get('idx_batch_assign') is None:
        g['idx_batch_assign'] = None
        g['n_confounders'] = 0
    else:
        g['idx_batch_assign'] = [np.asarray(a, dtype=np.int64)
                                 for a in g['idx_batch_assign']]
        for conf, a in enumerate(g['idx_batch_assign']):
            if len(a) != num_cells:
                raise ValueError(
                    f"Length of idx_batch_assign[{conf}] must equal num_cells")
        g['n_confounders'] = len(g['idx_batch_assign'])
    if g['spline_basis'] is not None and np.shape(g['spline_basis'])[0] != num_cells:
        raise ValueError("spline_basis rows must equal num_cells")
    if g['idx_groups'] is not None and len(g['idx_groups']) != num_cells:
        raise ValueError("Length of idx_groups must equal num_cells")
    if g['continuous_covar'] is not None and len(g['continuous_covar']) != num_cells:
        raise ValueError("Length of continuous_covar must equal num_cells")
    return g


def n_model_params(g):
    """Number of compressed coefficients per gene for a mean/dispersion model."""
    kind = g['str_model']
    if kind == 'constant':
        return 1
    if kind == 'impulse':
        return N_IMPULSE_PARAMS
    if kind == 'spline':
        return np.shape(g['spline_basis'])[1]
    if kind == 'groups':
        return g['n_groups'] if g.get('n_groups') is not None \
            else int(np.max(g['idx_groups'])) + 1
    if kind == 'mixture':
        return g['n_mix']
    raise ModelSpecificationError(f"str_model={kind!r} not recognised")


def n_drop_params(g):
    """Number of dropout coefficients per cell."""
    base = 2 if g['str_model'] == 'logistic_of_mean' else 1
    return base + g.get('n_const_predictors', 0)


def gene_batch_model(batch_models, gene):
    """Extract the batch-correction vectors of one gene.

    Parameters
    ----------
    batch_models : list of ndarray (num_genes x n_batches) or None
        One matrix per confounder.
    gene : int

    Returns
    -------
    list of ndarray, or None
    """
    if batch_models is None:
        return None
    return [np.asarray(m, dtype=np.float64)[gene, :] for m in batch_models]


def _with_num_genes(g, num_genes, what):
    if g.get('num_genes') is None:
        g = g._copy()
        g['num_genes'] = num_genes
    elif g['num_genes'] != num_genes:
        raise ValueError(
            f"{what} has {num_genes} genes but its model global has {g['num_genes']}")
    return g


def _check_batch_models(batch_models, g, num_genes, what):
    if g['n_confounders'] == 0:
        return None
    if batch_models is None:
        raise ValueError(f"{what} is required: model global has "
                         f"{g['n_confounders']} confounder(s)")
    batch_models = [as_float_matrix(m, f'{what}[{c}]') for c, m in enumerate(batch_models)]
    if len(batch_models) != g['n_confounders']:
        raise ValueError(f"{what} has {len(batch_models)} confounder(s) but "
                         f"model global has {g['n_confounders']}")
    for conf, m in enumerate(batch_models):
        if m.shape[0] != num_genes:
            raise ValueError(f"{what}[{conf}] must have one row per gene")
        if m.shape[1] < g['n_batches'][conf]:
            raise ValueError(f"{what}[{conf}] must have one column per batch "
                             f"({g['n_batches'][conf]})")
    return batch_models


def make_zinb_model(mu_model, mu_model_global, disp_model, disp_model_global,
                    drop_model, drop_model_global, mu_batch_model=None,
                    disp_batch_model=None, pi_const_predictors=None):
    """Bundle fitted compressed coefficients with their model globals.

    Parameters
    ----------
    mu_model : array-like (num_genes x n_mu_params)
        Mean model coefficients, one row per gene.
    mu_model_global : MuModelGlobal
    disp_model : array-like (num_genes x n_disp_params)
        Dispersion model coefficients, one row per gene.
    disp_model_global : DispModelGlobal
    drop_model : array-like (num_cells x n_drop_params)
        Dropout model coefficients, one row per cell.
    drop_model_global : DropModelGlobal
    mu_batch_model, disp_batch_model : list of array-like, optional
        Batch-correction factors, one (num_genes x n_batches) matrix per
        confounder.
    pi_const_predictors : array-like (num_genes x n_const_predictors), optional
        Constant gene-wise predictors of the dropout model.

    Returns
    -------
    ZINBModel
    """
    mu_model = as_float_matrix(mu_model, 'mu_model')
    disp_model = as_float_matrix(disp_model, 'disp_model')
    drop_model = as_float_matrix(drop_model, 'drop_model')
    num_genes = mu_model.shape[0]

    if disp_model.shape[0] != num_genes:
        raise ValueError("mu_model and disp_model have different numbers of genes")
    mu_model_global = _with_num_genes(mu_model_global, num_genes, 'mu_model')
    disp_model_global = _with_num_genes(disp_model_global, num_genes, 'disp_model')
    if mu_model_global['num_cells'] != disp_model_global['num_cells']:
        raise ValueError("Mean and dispersion model globals disagree on num_cells")
    num_cells = mu_model_global['num_cells']

    for coef, g, what in ((mu_model, mu_model_global, 'mu_model'),
                          (disp_model, disp_model_global, 'disp_model')):
        npar = n_model_params(g)
        if coef.shape[1] != npar:
            raise ValueError(f"{what} has {coef.shape[1]} columns but a "
                             f"'{g['str_model']}' model needs {npar}")

    if drop_model_global['num_cells'] != num_cells or \
            drop_model_global['num_genes'] != num_genes:
        raise ValueError("Dropout model global dimensions disagree with the data")
    if drop_model.shape[0] != num_cells:
        raise ValueError("drop_model must have one row per cell")
    if drop_model.shape[1] != n_drop_params(drop_model_global):
        raise ValueError(f"drop_model has {drop_model.shape[1]} columns but a "
                         f"'{drop_model_global['str_model']}' model with "
                         f"{drop_model_global['n_const_predictors']} constant "
                         f"predictor(s) needs {n_drop_params(drop_model_global)}")

    p = drop_model_global['n_const_predictors']
    if pi_const_predictors is not None:
        pi_const_predictors = as_float_matrix(pi_const_predictors, 'pi_const_predictors')
        if pi_const_predictors.shape != (num_genes, p):
            raise ValueError(f"pi_const_predictors must be {num_genes} x {p}")
    elif p > 0:
        raise ValueError(f"pi_const_predictors is required: dropout model has "
                         f"{p} constant predictor(s)")

    x = ZINBModel()
    x['mu_model'] = mu_model
    x['mu_batch_model'] = _check_batch_models(mu_batch_model, mu_model_global,
                                              num_genes, 'mu_batch_model')
    x['mu_model_global'] = mu_model_global
    x['disp_model'] = disp_model
    x['disp_batch_model'] = _check_batch_models(disp_batch_model, disp_model_global,
                                                num_genes, 'disp_batch_model')
    x['disp_model_global'] = disp_model_global
    x['drop_model'] = drop_model
    x['drop_model_global'] = drop_model_global
    x['pi_const_predictors'] = pi_const_predictors
    return x
