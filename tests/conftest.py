"""Shared fixtures for lineagepy tests."""

import numpy as np
import pytest


@pytest.fixture
def rng():
    """Seeded random number generator for reproducibility."""
    return np.random.RandomState(42)


@pytest.fixture
def batch_assign4():
    """Two confounders over 4 cells."""
    return [np.array([0, 0, 1, 1]), np.array([0, 1, 0, 1])]


@pytest.fixture
def batch_model4():
    """Batch-correction factors of one gene for the two confounders."""
    return [np.array([2.0, 4.0]), np.array([1.0, 0.5])]


@pytest.fixture
def mu_global_const4(batch_assign4):
    """Constant mean model over 4 cells with two confounders."""
    import lineagepy as lp
    return lp.make_mu_model_global('constant', num_cells=4,
                                   batch_assign=batch_assign4)


@pytest.fixture
def design12(rng):
    """Static experiment design of 12 cells: pseudotime, spline basis,
    3 groups and two confounders."""
    ncells = 12
    pseudotime = np.linspace(0, 10, ncells)
    # Gaussian bumps as a stand-in for a B-spline basis
    centers = np.array([0.0, 3.0, 6.0, 10.0])
    basis = np.exp(-0.5 * (pseudotime[:, None] - centers[None, :]) ** 2 / 4.0)
    return {
        'ncells': ncells,
        'pseudotime': pseudotime,
        'basis': basis,
        'groups': np.tile([0, 1, 2], 4),
        'batch_assign': [np.repeat([0, 1, 2], 4), np.tile([0, 1], 6)],
        'batch_model': [np.array([1.0, 1.3, 0.7]), np.array([1.0, 2.0])],
    }


@pytest.fixture
def small_model(rng):
    """ZINBModel: 4 genes x 8 cells, constant means with one confounder,
    spline dispersions, logistic-of-mean dropout with one gene predictor."""
    import lineagepy as lp
    ncells, ngenes = 8, 4
    pseudotime = np.linspace(0, 1, ncells)
    basis = np.column_stack([np.ones(ncells), pseudotime, pseudotime ** 2])

    mu_global = lp.make_mu_model_global(
        'constant', ncells, batch_assign=[np.repeat([0, 1], 4)])
    disp_global = lp.make_disp_model_global('spline', ncells, spline_basis=basis)
    drop_global = lp.make_drop_model_global('logistic_of_mean', ncells, ngenes,
                                            n_const_predictors=1)

    drop_model = rng.normal(0, 0.5, size=(ncells, 3))
    drop_model[:, 1] = -np.abs(drop_model[:, 1]) - 0.2
    mu_batch = np.column_stack([np.ones(ngenes), [1.5, 0.5, 2.0, 1.0]])
    return lp.make_zinb_model(
        mu_model=np.array([[2.0], [5.0], [1.0], [10.0]]),
        mu_model_global=mu_global,
        disp_model=rng.normal(0, 0.5, size=(ngenes, 3)),
        disp_model_global=disp_global,
        drop_model=drop_model,
        drop_model_global=drop_global,
        mu_batch_model=[mu_batch],
        pi_const_predictors=rng.uniform(0.3, 0.6, size=(ngenes, 1)),
    )


@pytest.fixture
def mixture_model(rng):
    """ZINBModel: 3 genes x 6 cells, two mixture components for the mean."""
    import lineagepy as lp
    ncells, ngenes = 6, 3
    return lp.make_zinb_model(
        mu_model=rng.uniform(1, 10, size=(ngenes, 2)),
        mu_model_global=lp.make_mu_model_global('mixture', ncells, n_mix=2),
        disp_model=np.full((ngenes, 1), 2.0),
        disp_model_global=lp.make_disp_model_global('constant', ncells),
        drop_model=np.full((ncells, 1), -2.0),
        drop_model_global=lp.make_drop_model_global('logistic', ncells, ngenes),
    )
