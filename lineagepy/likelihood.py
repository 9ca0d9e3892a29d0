"""Zero-inflated negative binomial log-likelihood of decompressed parameters."""

import numpy as np
from scipy.special import gammaln

from .decompress import (decompress_means_by_gene, decompress_disp_by_gene,
                         decompress_dropout_rate_by_gene)
from .errors import ModelSpecificationError
from .model_global import _KIND_ALIASES, gene_batch_model
from .utils import as_float_vector, resolve_interval


def eval_log_lik_zinb(counts, mu, disp, pi):
    """Summed ZINB log-likelihood of one gene's counts.

    Parameters
    ----------
    counts : array-like
        Observed counts; NaN entries are treated as missing and skipped.
    mu : float or array-like
        Negative binomial means.
    disp : float or array-like
        Negative binomial size parameters (variance = mu + mu^2 / disp).
    pi : float or array-like
        Dropout probabilities.

    Returns
    -------
    float
    """
    y = as_float_vector(counts, 'counts')
    y, mu, disp, pi = np.broadcast_arrays(
        y, as_float_vector(mu, 'mu'), as_float_vector(disp, 'disp'),
        as_float_vector(pi, 'pi'))
    keep = ~np.isnan(y)
    y, mu, disp, pi = y[keep], mu[keep], disp[keep], pi[keep]
    if np.any(y < 0):
        raise ValueError("Negative counts not allowed")

    zero = y == 0
    # NB probability of a zero: (disp / (disp + mu))^disp
    log_nb_zero = disp[zero] * (np.log(disp[zero]) - np.log(disp[zero] + mu[zero]))
    ll_zero = np.sum(np.log(pi[zero] + (1.0 - pi[zero]) * np.exp(log_nb_zero)))

    yn, m, r, p = y[~zero], mu[~zero], disp[~zero], pi[~zero]
    log_rm = np.log(r + m)
    log_nb = (gammaln(yn + r) - gammaln(r) - gammaln(yn + 1.0)
              + r * (np.log(r) - log_rm) + yn * (np.log(m) - log_rm))
    ll_nonzero = np.sum(np.log1p(-p) + log_nb)
    return float(ll_zero + ll_nonzero)


def eval_log_lik_gene(counts, model, gene, interval=None):
    """ZINB log-likelihood of one gene under a compressed model.

    Decompresses the gene's means, dispersions and dropout rates (restricted
    to ``interval`` when given) and evaluates :func:`eval_log_lik_zinb`.

    Parameters
    ----------
    counts : array-like (num_cells,)
        Counts of the gene in all cells.
    model : ZINBModel
    gene : int
        0-based gene position.
    interval : array-like of int, optional
        0-based positions of the cells in scope. Default all cells.

    Returns
    -------
    float
    """
    mu_global = model['mu_model_global']
    disp_global = model['disp_model_global']
    for g, what in ((mu_global, 'mean'), (disp_global, 'dispersion')):
        if _KIND_ALIASES.get(g['str_model'], g['str_model']) == 'mixture':
            raise ModelSpecificationError(
                f"eval_log_lik_gene(): {what} mixture models need mixture "
                f"weights and are not supported")

    counts = as_float_vector(counts, 'counts')
    if counts.size != mu_global['num_cells']:
        raise ValueError(f"counts has {counts.size} entries but "
                         f"num_cells={mu_global['num_cells']}")
    idx = resolve_interval(interval, mu_global['num_cells'])

    mu = decompress_means_by_gene(
        model['mu_model'][gene], mu_global,
        batch_model=gene_batch_model(model.get('mu_batch_model'), gene),
        interval=idx)
    disp = decompress_disp_by_gene(
        model['disp_model'][gene], disp_global,
        batch_model=gene_batch_model(model.get('disp_batch_model'), gene),
        interval=idx)
    const = model.get('pi_const_predictors')
    pi = decompress_dropout_rate_by_gene(
        model['drop_model'], model['drop_model_global'], mu=mu,
        pi_const_predictors=None if const is None else const[gene],
        interval=idx)
    return eval_log_lik_zinb(counts[idx], mu, disp, pi)
