import json
import logging
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from main import main

SCHEMA_PATH = Path(__file__).resolve().parents[1] / "config" / "schema.json"


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logging.shutdown()
    logging.getLogger().handlers = []


@pytest.fixture
def run_config(tmp_path):
    rng = np.random.default_rng(0)
    X = rng.normal(size=(60, 4))
    df = pd.DataFrame(X, columns=['a', 'b', 'c', 'd'])
    df['y'] = 2 * df['a'] - df['b'] + rng.normal(scale=0.1, size=60)
    df.to_csv(tmp_path / "data.csv", index=False)

    config = {
        "seed": 3,
        "data": {"file_path": str(tmp_path / "data.csv"), "target": "y"},
        "pipeline": {"type": "penalty_path", "n_penalties": 20, "extract_coefficients": True},
        "parameters": [
            {"name": "mixture", "range": [0.5, 1.0]},
            {"name": "num_terms", "kind": "discrete", "range": [2, 4]},
            {"name": "penalty", "range": [-4, 0], "transform": "log10"},
        ],
        "resampling": {"folds": 3},
        "search": {
            "method": "grid",
            "metrics": ["rmse", "rsq"],
            "levels": {"mixture": 2, "num_terms": 2, "penalty": 3},
            "bayes": {"initial": 3, "iter": 2, "n_candidates": 50},
        },
        "execution": {"n_jobs": 1},
        "outputs": {"base_results_dir": str(tmp_path / "results")},
        "logging": {"log_to_console": False, "log_dir": str(tmp_path / "logs")},
    }

    def _write(**overrides):
        for section, values in overrides.items():
            config[section].update(values)
        path = tmp_path / "config.json"
        path.write_text(json.dumps(config))
        return path

    return _write


def test_grid_search_end_to_end(run_config, tmp_path):
    exit_code = main(["--config", str(run_config()), "--schema", str(SCHEMA_PATH), "--run-id", "grid"])

    assert exit_code == 0
    run_dir = tmp_path / "results" / "grid"
    assert (run_dir / "01_RunConfiguration" / "config_used.json").exists()
    metrics = pd.read_parquet(run_dir / "02_GridSearch" / "metrics.parquet")
    # 12 configurations x 3 folds x 2 metrics
    assert len(metrics) == 72
    assert (metrics['status'] == 'ok').all()
    assert (run_dir / "02_GridSearch" / "extractions.parquet").exists()
    best = json.loads((run_dir / "02_GridSearch" / "best_configuration.json").read_text())
    assert best['metric'] == 'rmse'


def test_bayesian_search_end_to_end(run_config, tmp_path):
    exit_code = main([
        "--config", str(run_config()), "--schema", str(SCHEMA_PATH), "--run-id", "bayes", "--method", "bayes",
    ])

    assert exit_code == 0
    history = pd.read_parquet(tmp_path / "results" / "bayes" / "03_BayesianOptimization" / "search_history.parquet")
    assert len(history) == 5


def test_dry_run_stops_after_validation(run_config, tmp_path):
    exit_code = main(["--config", str(run_config()), "--schema", str(SCHEMA_PATH), "--run-id", "dry", "--dry-run"])

    assert exit_code == 0
    assert (tmp_path / "results" / "dry" / "01_RunConfiguration").exists()
    assert not (tmp_path / "results" / "dry" / "02_GridSearch").exists()


def test_invalid_configuration_exits_with_error(run_config):
    path = run_config(resampling={"folds": 1})
    assert main(["--config", str(path), "--schema", str(SCHEMA_PATH)]) == 1


def test_penalty_range_beyond_path_bounds_is_rejected(run_config, tmp_path):
    path = run_config(pipeline={"penalty_bounds": [1e-3, 1.0]})

    assert main(["--config", str(path), "--schema", str(SCHEMA_PATH), "--run-id", "narrow"]) == 1
    assert not (tmp_path / "results" / "narrow" / "02_GridSearch" / "metrics.parquet").exists()
