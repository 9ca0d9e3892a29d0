"""
Decompress parameters: compute parameter values from the compressed models.

The mean and dispersion of a gene are stored as a few model coefficients
plus a model-global object describing how they expand into one value per
cell (or per cell and mixture component). Dropout rates are stored as
per-cell logistic coefficients. The routines here expand them, optionally
restricted to an interval of cells, and scale the mean and dispersion by
the batch-correction factors of each confounder.
"""

import numpy as np
from concurrent.futures import ProcessPoolExecutor

from .errors import ModelSpecificationError, ParameterDomainError
from .model_global import _KIND_ALIASES, gene_batch_model
from .primitives import eval_impulse_model, eval_dropout_model
from .utils import (resolve_interval, take_checked, as_float_vector,
                    as_float_matrix)

_TINY = np.finfo(np.float64).tiny


# ---------------------------------------------------------------------------
# Batch scaling
# ---------------------------------------------------------------------------

def _batch_scale(batch_model, model_global, idx):
    scale = np.ones(len(idx), dtype=np.float64)
    assign = model_global.get('idx_batch_assign')
    if assign is None:
        return scale
    n_conf = model_global.get('n_confounders', len(assign))
    if n_conf == 0:
        return scale
    if batch_model is None or len(batch_model) < n_conf:
        nmod = 0 if batch_model is None else len(batch_model)
        raise ValueError(f"batch model has {nmod} confounder(s) but model "
                         f"global has {n_conf}")
    for conf in range(n_conf):
        conf_idx = np.asarray(assign[conf])[idx]
        scale = scale * take_checked(batch_model[conf], conf_idx,
                                     f"batch model of confounder {conf}")
    return scale


def compute_batch_scale(batch_model, model_global, interval=None):
    """Multiplicative batch-correction factor of each cell.

    Folds the factors of all confounders into one scale per cell:
    ``scale[j] = prod_c batch_model[c][idx_batch_assign[c][j]]``, with
    confounders visited in order.

    Parameters
    ----------
    batch_model : list of array-like or None
        Batch-correction factors of one gene, one vector per confounder.
    model_global : MuModelGlobal or DispModelGlobal
    interval : array-like of int, optional
        0-based positions of the cells in scope. Default all cells.

    Returns
    -------
    ndarray, one entry per cell in scope; all ones without confounders.
    """
    idx = resolve_interval(interval, model_global['num_cells'])
    return _batch_scale(batch_model, model_global, idx)


# ---------------------------------------------------------------------------
# Mean and dispersion
# ---------------------------------------------------------------------------

def _scalar_coef(model, caller, kind):
    coef = as_float_vector(model, 'model')
    if coef.size != 1:
        raise ValueError(f"{caller}(): '{kind}' model expects one coefficient, "
                         f"got {coef.size}")
    return coef[0]


def _payload(model_global, key, caller, kind):
    value = model_global.get(key)
    if value is None:
        raise ModelSpecificationError(f"{caller}(): '{kind}' model requires {key}")
    return value


def _expand_by_gene(model, model_global, idx, caller, field):
    """Expand one gene's coefficients to the cells in idx, before batch scaling."""
    kind = model_global.get('str_model')
    kind = _KIND_ALIASES.get(kind, kind)

    if kind == 'constant':
        return np.full(len(idx), _scalar_coef(model, caller, kind))
    elif kind == 'impulse':
        covar = np.asarray(_payload(model_global, 'continuous_covar', caller, kind))
        return eval_impulse_model(model, covar[idx])
    elif kind == 'spline':
        basis = np.asarray(_payload(model_global, 'spline_basis', caller, kind))
        coef = as_float_vector(model, 'model')
        if basis.shape[1] != coef.size:
            raise ValueError(f"{caller}(): spline basis has {basis.shape[1]} "
                             f"columns but {coef.size} coefficients were supplied")
        # exp keeps the parameter positive; the floor guards underflow
        return np.maximum(np.exp(basis[idx, :] @ coef), _TINY)
    elif kind == 'groups':
        groups = np.asarray(_payload(model_global, 'idx_groups', caller, kind))
        return take_checked(model, groups[idx], "group coefficients")
    elif kind == 'mixture':
        # Coefficient of ONE mixture component
        return np.full(len(idx), _scalar_coef(model, caller, kind))
    raise ModelSpecificationError(
        f"{caller}(): {field}['str_model']={model_global.get('str_model')!r} "
        f"not recognised.")


def _decompress_by_gene(model, model_global, batch_model, interval, caller, field):
    idx = resolve_interval(interval, model_global['num_cells'])
    values = _expand_by_gene(model, model_global, idx, caller, field)
    return values * _batch_scale(batch_model, model_global, idx)


def decompress_means_by_gene(mu_model, mu_model_global, batch_model=None,
                             interval=None):
    """Compute the mean parameter of each cell for one gene.

    Parameters
    ----------
    mu_model : array-like
        Mean model coefficients of the gene: one value ('constant',
        'mixture'), seven impulse parameters ('impulse'), one per basis
        function ('spline') or one per group ('groups').
    mu_model_global : MuModelGlobal
        Meta-data of the mean models.
    batch_model : list of array-like, optional
        Batch-correction factors of the gene, one vector per confounder.
    interval : array-like of int, optional
        0-based positions of the cells for which to compute the means.
        Default all cells.

    Returns
    -------
    ndarray, one mean per cell in scope.
    """
    return _decompress_by_gene(mu_model, mu_model_global, batch_model, interval,
                               'decompress_means_by_gene', 'mu_model_global')


def decompress_disp_by_gene(disp_model, disp_model_global, batch_model=None,
                            interval=None):
    """Compute the dispersion parameter of each cell for one gene.

    Same contract as :func:`decompress_means_by_gene` for the dispersion
    model.
    """
    return _decompress_by_gene(disp_model, disp_model_global, batch_model,
                               interval, 'decompress_disp_by_gene',
                               'disp_model_global')


def _mixture_outer(model, model_global, scale, caller):
    means = as_float_vector(model, 'model')
    n_mix = model_global.get('n_mix')
    if n_mix is not None and means.size != n_mix:
        raise ValueError(f"{caller}(): expected {n_mix} mixture components, "
                         f"got {means.size}")
    return np.outer(scale, means)


def decompress_mu_by_gene_mm(mu_model, mu_model_global, batch_model=None,
                             interval=None):
    """Compute the mean parameter matrix of one gene under a mixture model.

    The batch scale is the same for all mixture components, so the matrix
    is the outer product of the per-cell batch scale and the component means.

    Parameters
    ----------
    mu_model : array-like (n_mix,)
        Mean of each mixture component.
    mu_model_global : MuModelGlobal
    batch_model : list of array-like, optional
    interval : array-like of int, optional

    Returns
    -------
    ndarray (cells in scope x n_mix)
    """
    idx = resolve_interval(interval, mu_model_global['num_cells'])
    scale = _batch_scale(batch_model, mu_model_global, idx)
    return _mixture_outer(mu_model, mu_model_global, scale,
                          'decompress_mu_by_gene_mm')


def decompress_disp_by_gene_mm(disp_model, disp_model_global, batch_model=None,
                               interval=None, disp_model_kind=None):
    """Compute the dispersion parameter matrix of one gene under a mixture model.

    Parameters
    ----------
    disp_model : array-like
        One dispersion shared by all components ('constant') or one per
        component ('mixture').
    disp_model_global : DispModelGlobal
        Must carry ``n_mix``.
    batch_model : list of array-like, optional
    interval : array-like of int, optional
    disp_model_kind : str, optional
        'constant' or 'mixture'. Defaults to the kind of
        ``disp_model_global``.

    Returns
    -------
    ndarray (cells in scope x n_mix)
    """
    caller = 'decompress_disp_by_gene_mm'
    kind = disp_model_kind if disp_model_kind is not None \
        else disp_model_global.get('str_model')
    kind = _KIND_ALIASES.get(kind, kind)
    idx = resolve_interval(interval, disp_model_global['num_cells'])
    scale = _batch_scale(batch_model, disp_model_global, idx)

    if kind == 'constant':
        n_mix = _payload(disp_model_global, 'n_mix', caller, 'mixture')
        column = scale * _scalar_coef(disp_model, caller, kind)
        return np.tile(column[:, None], (1, n_mix))
    elif kind == 'mixture':
        return _mixture_outer(disp_model, disp_model_global, scale, caller)
    raise ModelSpecificationError(
        f"{caller}(): dispersion model kind={kind!r} not recognised, "
        f"must be 'constant' or 'mixture'.")


# ---------------------------------------------------------------------------
# Dropout rate
# ---------------------------------------------------------------------------

def _log_mean(mu, n, caller):
    if mu is None:
        raise ValueError(f"{caller}(): 'logistic_of_mean' dropout model requires mu")
    mu = as_float_vector(mu, 'mu')
    if mu.size != n:
        raise ValueError(f"{caller}(): mu has {mu.size} entries, expected {n}")
    bad = np.flatnonzero(~(np.isfinite(mu) & (mu > 0)))
    if len(bad) > 0:
        raise ParameterDomainError(
            f"{caller}(): log of mean is undefined, mu[{bad[0]}]={mu[bad[0]]!r} "
            f"({len(bad)} non-positive or non-finite entries)")
    return np.log(mu)


def _dropout_predictors(kind, n, mu, const_predictors, caller, field, str_model):
    """Predictor rows {offset, [log mu], constant predictors} for n entries."""
    if kind == 'logistic':
        return np.column_stack([np.ones(n), const_predictors])
    elif kind == 'logistic_of_mean':
        return np.column_stack([np.ones(n), _log_mean(mu, n, caller),
                                const_predictors])
    raise ModelSpecificationError(
        f"{caller}(): {field}['str_model']={str_model!r} not recognised.")


def decompress_dropout_rate_by_gene(drop_model, drop_model_global, mu=None,
                                    pi_const_predictors=None, interval=None):
    """Compute the dropout rate of each cell for one gene.

    Parameters
    ----------
    drop_model : array-like (num_cells x n_params)
        Dropout model coefficients of all cells: offset, log-mean
        coefficient ('logistic_of_mean' only), then one per constant
        predictor.
    drop_model_global : DropModelGlobal
    mu : array-like, optional
        Mean parameter of each cell in scope for this gene; required for
        'logistic_of_mean' and must be strictly positive.
    pi_const_predictors : array-like (n_const_predictors,), optional
        Constant predictors of this gene (e.g. GC content).
    interval : array-like of int, optional
        0-based positions of the cells in scope. Default all cells.

    Returns
    -------
    ndarray, one dropout rate in (0, 1) per cell in scope.
    """
    caller = 'decompress_dropout_rate_by_gene'
    str_model = drop_model_global.get('str_model')
    kind = _KIND_ALIASES.get(str_model, str_model)
    num_cells = drop_model_global['num_cells']

    drop_model = as_float_matrix(drop_model, 'drop_model')
    if drop_model.shape[0] != num_cells:
        raise ValueError(f"{caller}(): drop_model has {drop_model.shape[0]} rows "
                         f"but num_cells={num_cells}")
    idx = resolve_interval(interval, num_cells)
    n = len(idx)
    if pi_const_predictors is None:
        const = np.zeros((n, 0))
    else:
        const = np.tile(as_float_vector(pi_const_predictors, 'pi_const_predictors'),
                        (n, 1))

    predictors = _dropout_predictors(kind, n, mu, const, caller,
                                     'drop_model_global', str_model)
    return np.atleast_1d(eval_dropout_model(drop_model[idx, :], predictors))


def decompress_dropout_rate_by_cell(drop_model, drop_model_global, mu=None,
                                    pi_const_predictors=None):
    """Compute the dropout rate of each gene for one cell.

    Parameters
    ----------
    drop_model : array-like (n_params,)
        Dropout model coefficients of the cell.
    drop_model_global : DropModelGlobal
    mu : array-like (num_genes,), optional
        Mean parameter of each gene in this cell; required for
        'logistic_of_mean' and must be strictly positive.
    pi_const_predictors : array-like (num_genes x n_const_predictors), optional
        Constant predictors, one row per gene.

    Returns
    -------
    ndarray, one dropout rate in (0, 1) per gene.
    """
    caller = 'decompress_dropout_rate_by_cell'
    str_model = drop_model_global.get('str_model')
    kind = _KIND_ALIASES.get(str_model, str_model)
    num_genes = drop_model_global['num_genes']

    coef = as_float_vector(drop_model, 'drop_model')
    if pi_const_predictors is None:
        const = np.zeros((num_genes, 0))
    else:
        const = as_float_matrix(pi_const_predictors, 'pi_const_predictors')
        if const.shape[0] != num_genes:
            raise ValueError(f"{caller}(): pi_const_predictors has "
                             f"{const.shape[0]} rows but num_genes={num_genes}")

    predictors = _dropout_predictors(kind, num_genes, mu, const, caller,
                                     'drop_model_global', str_model)
    return np.atleast_1d(eval_dropout_model(coef, predictors))


# ---------------------------------------------------------------------------
# Whole-dataset decompression
# ---------------------------------------------------------------------------

def _call(task):
    fn, args, kwargs = task
    return fn(*args, **kwargs)


def _run_tasks(tasks, ncore, verbose, unit):
    """Evaluate independent tasks serially or in a process pool."""
    if ncore > 1 and len(tasks) > 1:
        with ProcessPoolExecutor(max_workers=ncore) as executor:
            return list(executor.map(_call, tasks))
    results = []
    ntask = len(tasks)
    for i, task in enumerate(tasks):
        if verbose and ntask > 100 and i % max(1, ntask // 10) == 0:
            print(f"  {unit} {i + 1}/{ntask}...")
        results.append(_call(task))
    return results


def _decompress_param_matrix(model, prefix, genes, interval, ncore, verbose):
    g = model[f'{prefix}_model_global']
    coefs = np.asarray(model[f'{prefix}_model'], dtype=np.float64)
    batch_models = model.get(f'{prefix}_batch_model')
    gene_idx = resolve_interval(genes, coefs.shape[0], what="genes")
    idx = resolve_interval(interval, g['num_cells'])

    kind = _KIND_ALIASES.get(g['str_model'], g['str_model'])
    mixture = kind == 'mixture'
    if prefix == 'disp' and kind == 'constant' and g.get('n_mix') is not None:
        # Constant within mixture: one column per component
        mixture = True
    if prefix == 'mu':
        fn = decompress_mu_by_gene_mm if mixture else decompress_means_by_gene
        label = 'means'
    else:
        fn = decompress_disp_by_gene_mm if mixture else decompress_disp_by_gene
        label = 'dispersions'

    if verbose:
        print(f"Decompressing {label} for {len(gene_idx)} genes x {len(idx)} cells.")
    tasks = [(fn, (coefs[i, :], g),
              {'batch_model': gene_batch_model(batch_models, i), 'interval': idx})
             for i in gene_idx]
    results = _run_tasks(tasks, ncore, verbose, 'Gene')
    if len(results) == 0:
        shape = (0, len(idx), g['n_mix']) if mixture else (0, len(idx))
        return np.empty(shape)
    return np.stack(results)


def decompress_means(model, genes=None, interval=None, ncore=1, verbose=False):
    """Decompress the mean parameters of many genes.

    Parameters
    ----------
    model : ZINBModel
    genes : array-like of int, optional
        0-based gene positions. Default all genes.
    interval : array-like of int, optional
        0-based cell positions. Default all cells.
    ncore : int
        Number of worker processes; genes are independent.
    verbose : bool
        Print progress.

    Returns
    -------
    ndarray (genes x cells), or (genes x cells x n_mix) for mixture models.
    """
    return _decompress_param_matrix(model, 'mu', genes, interval, ncore, verbose)


def decompress_dispersions(model, genes=None, interval=None, ncore=1,
                           verbose=False):
    """Decompress the dispersion parameters of many genes.

    See :func:`decompress_means`.
    """
    return _decompress_param_matrix(model, 'disp', genes, interval, ncore,
                                    verbose)


def decompress_dropout_rates(model, mu=None, genes=None, ncore=1, verbose=False):
    """Decompress the dropout rates of all cells for many genes.

    Each cell is evaluated with :func:`decompress_dropout_rate_by_cell`.

    Parameters
    ----------
    model : ZINBModel
    mu : array-like (genes x num_cells), optional
        Mean parameters of the selected genes (or of all genes). Decompressed
        from ``model`` for the selected genes only when the dropout model is
        'logistic_of_mean' and none are given.
    genes : array-like of int, optional
        0-based gene positions to return. Default all genes.
    ncore : int
        Number of worker processes; cells are independent.
    verbose : bool
        Print progress.

    Returns
    -------
    ndarray (genes x cells)
    """
    g = model['drop_model_global']
    drop_model = as_float_matrix(model['drop_model'], 'drop_model')
    num_genes, num_cells = g['num_genes'], g['num_cells']
    gene_idx = resolve_interval(genes, num_genes, what="genes")
    kind = _KIND_ALIASES.get(g['str_model'], g['str_model'])

    if kind == 'logistic_of_mean':
        if mu is None:
            mu = decompress_means(model, genes=gene_idx, ncore=ncore)
        mu = np.asarray(mu, dtype=np.float64)
        if mu.shape == (num_genes, num_cells) and len(gene_idx) != num_genes:
            mu = mu[gene_idx, :]
        if mu.shape != (len(gene_idx), num_cells):
            raise ModelSpecificationError(
                "decompress_dropout_rates(): 'logistic_of_mean' needs one mean "
                f"per selected gene and cell ({len(gene_idx)} x {num_cells}), "
                f"got {mu.shape}")
    else:
        mu = None

    if verbose:
        print(f"Decompressing dropout rates for {num_cells} cells x "
              f"{len(gene_idx)} genes.")
    if len(gene_idx) == 0:
        return np.empty((0, num_cells))
    const = model.get('pi_const_predictors')
    if const is not None:
        const = np.asarray(const, dtype=np.float64)[gene_idx, :]
    g_sub = g._copy()
    g_sub['num_genes'] = len(gene_idx)
    tasks = [(decompress_dropout_rate_by_cell, (drop_model[j, :], g_sub),
              {'mu': None if mu is None else mu[:, j],
               'pi_const_predictors': const})
             for j in range(num_cells)]
    return np.column_stack(_run_tasks(tasks, ncore, verbose, 'Cell'))
