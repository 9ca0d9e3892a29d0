"""
lineagepy: decompression of compressed ZINB models of single-cell data.

Expands gene-wise mean and dispersion models and cell-wise dropout models
into per-cell parameter values.
"""

__version__ = "0.1.0"

# --- Classes ---
from .classes import MuModelGlobal, DispModelGlobal, DropModelGlobal, ZINBModel
from .errors import ModelSpecificationError, ParameterDomainError

# --- Model globals & container ---
from .model_global import (
    make_mu_model_global,
    make_disp_model_global,
    make_drop_model_global,
    make_zinb_model,
    valid_model_global,
    gene_batch_model,
    n_model_params,
    n_drop_params,
)

# --- Evaluation kernels ---
from .primitives import eval_impulse_model, eval_dropout_model

# --- Decompression ---
from .decompress import (
    compute_batch_scale,
    decompress_means_by_gene,
    decompress_mu_by_gene_mm,
    decompress_disp_by_gene,
    decompress_disp_by_gene_mm,
    decompress_dropout_rate_by_gene,
    decompress_dropout_rate_by_cell,
    decompress_means,
    decompress_dispersions,
    decompress_dropout_rates,
)

# --- Likelihood ---
from .likelihood import eval_log_lik_zinb, eval_log_lik_gene

# --- Utilities ---
from .utils import resolve_interval
