import pytest
from sklearn.linear_model import Ridge

from tunesearch.parameter_space import ParameterConfig
from tunesearch.pipeline_contract import EstimatorPipeline, compute_metric, metric_direction
from tunesearch.utils.exceptions import ConfigurationError, DataValidationError, FitError


def test_every_dimension_is_fit_determining():
    pipeline = EstimatorPipeline('Ridge', target='y')
    config = ParameterConfig(alpha=1.0)
    assert pipeline.fit_parameters(config) == config
    assert len(pipeline.free_values(config)) == 0


def test_fit_and_score(regression_data):
    pipeline = EstimatorPipeline('Ridge', target='y', fixed_params={'fit_intercept': True})
    model = pipeline.fit(ParameterConfig(alpha=0.1), regression_data)
    assert isinstance(model, Ridge)
    assert model.alpha == 0.1
    assert pipeline.score(model, regression_data, 'rmse') < 0.5
    assert pipeline.score(model, regression_data, 'rsq') > 0.95


def test_unknown_model_fails_early():
    with pytest.raises(ConfigurationError, match="Unknown model name"):
        EstimatorPipeline('SuperAdvancedAIModel', target='y')


def test_unaccepted_parameter_is_a_fit_error(regression_data):
    pipeline = EstimatorPipeline('Ridge', target='y')
    with pytest.raises(FitError, match="does not accept"):
        pipeline.fit(ParameterConfig(n_neighbors=3), regression_data)


def test_invalid_parameter_value_is_a_fit_error(regression_data):
    pipeline = EstimatorPipeline('Ridge', target='y')
    with pytest.raises(FitError):
        pipeline.fit(ParameterConfig(alpha=-1.0), regression_data)


def test_non_convergence_is_a_fit_error(regression_data):
    pipeline = EstimatorPipeline('Lasso', target='y', fixed_params={'max_iter': 1, 'tol': 0.0})
    with pytest.raises(FitError, match="did not converge"):
        pipeline.fit(ParameterConfig(alpha=1e-4), regression_data)


def test_missing_target_column(regression_data):
    pipeline = EstimatorPipeline('Ridge', target='angle')
    with pytest.raises(DataValidationError, match="angle"):
        pipeline.fit(ParameterConfig(alpha=1.0), regression_data)


def test_metrics():
    y_true, y_pred = [1.0, 2.0, 3.0], [1.0, 2.0, 5.0]
    assert compute_metric('mae', y_true, y_pred) == pytest.approx(2 / 3)
    assert compute_metric('rmse', y_true, y_pred) == pytest.approx((4 / 3) ** 0.5)
    assert compute_metric('rsq', y_true, y_true) == pytest.approx(1.0)
    assert metric_direction('rsq') == 'maximize'
    assert metric_direction('rmse') == 'minimize'
    with pytest.raises(ValueError, match="Unknown metric"):
        compute_metric('auc', y_true, y_pred)
