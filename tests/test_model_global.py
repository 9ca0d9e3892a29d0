"""Tests for model-global construction and validation."""

import numpy as np
import pandas as pd
import pytest

import lineagepy as lp


class TestMakeModelGlobal:
    """make_mu_model_global / make_disp_model_global."""

    def test_constant(self):
        g = lp.make_mu_model_global('constant', num_cells=10, num_genes=3)
        assert isinstance(g, lp.MuModelGlobal)
        assert g.str_model == 'constant'
        assert g.num_cells == 10
        assert g.n_confounders == 0
        assert g.idx_batch_assign is None

    def test_disp_class(self):
        g = lp.make_disp_model_global('constant', num_cells=10)
        assert isinstance(g, lp.DispModelGlobal)

    @pytest.mark.parametrize("alias,canonical", [('splines', 'spline'),
                                                 ('MM', 'mixture')])
    def test_aliases(self, alias, canonical):
        g = lp.make_mu_model_global(alias, num_cells=3,
                                    spline_basis=np.eye(3), n_mix=2)
        assert g.str_model == canonical

    def test_unknown_kind(self):
        with pytest.raises(lp.ModelSpecificationError, match="quadratic"):
            lp.make_mu_model_global('quadratic', num_cells=3)

    def test_unknown_kind_is_value_error(self):
        with pytest.raises(ValueError):
            lp.make_disp_model_global('linear', num_cells=3)

    @pytest.mark.parametrize("kind,payload", [('spline', 'spline_basis'),
                                              ('groups', 'groups'),
                                              ('impulse', 'continuous_covar'),
                                              ('mixture', 'n_mix')])
    def test_missing_payload(self, kind, payload):
        with pytest.raises(lp.ModelSpecificationError, match=payload):
            lp.make_mu_model_global(kind, num_cells=3)

    def test_basis_rows(self):
        with pytest.raises(ValueError, match="rows"):
            lp.make_mu_model_global('spline', num_cells=4,
                                    spline_basis=np.ones((3, 2)))

    def test_basis_dataframe(self):
        basis = pd.DataFrame({'b1': [1.0, 0.5, 0.0], 'b2': [0.0, 0.5, 1.0]})
        g = lp.make_mu_model_global('spline', num_cells=3, spline_basis=basis)
        assert g.spline_basis.shape == (3, 2)
        assert lp.n_model_params(g) == 2

    def test_covar_length(self):
        with pytest.raises(ValueError, match="continuous_covar"):
            lp.make_mu_model_global('impulse', num_cells=4,
                                    continuous_covar=[0.0, 1.0])

    def test_covar_finite(self):
        with pytest.raises(ValueError, match="finite"):
            lp.make_mu_model_global('impulse', num_cells=2,
                                    continuous_covar=[0.0, np.nan])

    def test_group_labels(self):
        g = lp.make_mu_model_global('groups', num_cells=5,
                                    groups=['b', 'a', 'b', 'c', 'a'])
        assert np.array_equal(g.idx_groups, [0, 1, 0, 2, 1])
        assert g.n_groups == 3
        assert g.group_levels == ['b', 'a', 'c']

    def test_group_categorical_drops_unused(self):
        groups = pd.Categorical(['x', 'z', 'x'], categories=['x', 'y', 'z'])
        g = lp.make_mu_model_global('groups', num_cells=3, groups=groups)
        assert g.n_groups == 2
        assert np.array_equal(g.idx_groups, [0, 1, 0])

    def test_empty_group_level_warns(self):
        with pytest.warns(UserWarning, match="no cells"):
            g = lp.make_mu_model_global('groups', num_cells=3, groups=[0, 2, 2])
        assert g.n_groups == 3

    def test_group_length(self):
        with pytest.raises(ValueError, match="groups"):
            lp.make_mu_model_global('groups', num_cells=3, groups=[0, 1])

    def test_n_mix(self):
        with pytest.raises(ValueError, match="n_mix"):
            lp.make_mu_model_global('mixture', num_cells=3, n_mix=0)

    def test_num_cells(self):
        with pytest.raises(ValueError, match="num_cells"):
            lp.make_mu_model_global('constant', num_cells=0)


class TestBatchAssign:
    """Confounder handling at construction."""

    def test_single_vector_is_one_confounder(self):
        g = lp.make_mu_model_global('constant', 4, batch_assign=np.array([0, 1, 1, 0]))
        assert g.n_confounders == 1
        assert g.n_batches == [2]

    def test_dataframe_columns(self):
        df = pd.DataFrame({'plate': ['p1', 'p1', 'p2', 'p2'],
                           'donor': ['d1', 'd2', 'd1', 'd2']})
        g = lp.make_mu_model_global('constant', 4, batch_assign=df)
        assert g.n_confounders == 2
        assert np.array_equal(g.idx_batch_assign[0], [0, 0, 1, 1])
        assert np.array_equal(g.idx_batch_assign[1], [0, 1, 0, 1])

    def test_matrix_columns(self):
        assign = np.array([[0, 0], [0, 1], [1, 0], [1, 1]])
        g = lp.make_mu_model_global('constant', 4, batch_assign=assign)
        assert g.n_confounders == 2
        assert np.array_equal(g.idx_batch_assign[1], [0, 1, 0, 1])

    def test_labels_scale(self):
        g = lp.make_mu_model_global('constant', 4,
                                    batch_assign=[['A', 'A', 'B', 'B']])
        mu = lp.decompress_means_by_gene(2.0, g, batch_model=[[1.0, 3.0]])
        assert np.allclose(mu, [2.0, 2.0, 6.0, 6.0])

    def test_single_level_warns(self):
        with pytest.warns(UserWarning, match="not identifiable"):
            lp.make_mu_model_global('constant', 3, batch_assign=[[0, 0, 0]])

    def test_assign_length(self):
        with pytest.raises(ValueError, match=r"batch_assign\[1\]"):
            lp.make_mu_model_global('constant', 3,
                                    batch_assign=[[0, 1, 0], [0, 1]])

    def test_negative_code(self):
        with pytest.raises(IndexError):
            lp.make_mu_model_global('constant', 3, batch_assign=[[0, -1, 0]])


class TestDropModelGlobal:
    """make_drop_model_global."""

    def test_logistic(self):
        g = lp.make_drop_model_global('logistic', 10, 5, n_const_predictors=2)
        assert isinstance(g, lp.DropModelGlobal)
        assert lp.n_drop_params(g) == 3

    def test_alias(self):
        g = lp.make_drop_model_global('logistic_ofMu', 10, 5)
        assert g.str_model == 'logistic_of_mean'
        assert lp.n_drop_params(g) == 2

    def test_unknown(self):
        with pytest.raises(lp.ModelSpecificationError, match="dropout model"):
            lp.make_drop_model_global('probit', 10, 5)

    def test_negative_predictors(self):
        with pytest.raises(ValueError):
            lp.make_drop_model_global('logistic', 10, 5, n_const_predictors=-1)


class TestValidModelGlobal:
    """valid_model_global on hand-built objects."""

    def test_fills_defaults(self):
        g = lp.MuModelGlobal({'str_model': 'splines', 'num_cells': 3,
                              'spline_basis': np.eye(3)})
        g = lp.valid_model_global(g)
        assert g.str_model == 'spline'
        assert g.n_confounders == 0
        assert g.idx_groups is None
        assert np.allclose(lp.decompress_means_by_gene([0.0, 0.0, 0.0], g), 1.0)

    def test_counts_confounders(self):
        g = lp.DispModelGlobal({'str_model': 'constant', 'num_cells': 2,
                                'idx_batch_assign': [[0, 1], [1, 1]]})
        g = lp.valid_model_global(g)
        assert g.n_confounders == 2

    def test_assign_length(self):
        g = lp.MuModelGlobal({'str_model': 'constant', 'num_cells': 3,
                              'idx_batch_assign': [[0, 1]]})
        with pytest.raises(ValueError, match="idx_batch_assign"):
            lp.valid_model_global(g)

    def test_unknown_kind(self):
        g = lp.MuModelGlobal({'str_model': 'cubic', 'num_cells': 3})
        with pytest.raises(lp.ModelSpecificationError):
            lp.valid_model_global(g)

    def test_drop(self):
        g = lp.DropModelGlobal({'str_model': 'logistic', 'num_cells': 3,
                                'num_genes': 2})
        g = lp.valid_model_global(g)
        assert g.n_const_predictors == 0

    def test_attribute_access(self):
        g = lp.make_mu_model_global('constant', 3)
        g.num_genes = 7
        assert g['num_genes'] == 7
        with pytest.raises(AttributeError):
            g.not_a_component
        assert "MuModelGlobal 'constant'" in repr(g)
