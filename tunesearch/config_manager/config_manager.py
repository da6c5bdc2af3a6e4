import hashlib
import json
import logging
import math
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import jsonschema
import psutil
from sklearn.model_selection import ParameterGrid

from tunesearch.utils.exceptions import ConfigurationError
from tunesearch.utils import constants

SEARCH_METHODS = ('grid', 'bayes')
PIPELINE_TYPES = ('penalty_path', 'estimator')


class ConfigurationManager:
    """
    Loads, validates and hydrates the search configuration.
    Every problem it finds is raised as ConfigurationError before any fit runs.
    """

    def __init__(self, config_path: str = "config/config.json",
                 schema_path: str = "config/schema.json"):
        """
        Args:
            config_path (str): Path to the user configuration JSON.
            schema_path (str): Path to the JSON schema definition.
        """
        self.config_path = config_path
        self.schema_path = schema_path
        self.config: Dict[str, Any] = {}
        self.schema: Dict[str, Any] = {}
        self.run_id: Optional[str] = None
        self.logger = logging.getLogger("config_manager")

    def load_and_validate(self) -> Dict[str, Any]:
        """
        Load the config, validate schema/logic/resources and propagate seeds.

        Returns:
            Dict[str, Any]: The validated configuration.

        Raises:
            ConfigurationError: If any validation step fails.
        """
        self.config = self._load_json(self.config_path)
        self.schema = self._load_json(self.schema_path)

        self._validate_schema()
        self._validate_logic()
        self._validate_resources()
        self._propagate_seeds()

        return self.config

    def generate_run_id(self) -> str:
        """Timestamp-based run identifier (YYYYMMDD_HHMMSS)."""
        if not self.run_id:
            self.run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self.run_id

    def save_artifacts(self, output_dir: str) -> Path:
        """
        Save the configuration used, its SHA-256 hash and environment
        metadata under ``output_dir``/01_RunConfiguration.
        """
        config_dir = Path(output_dir) / constants.CONFIG_DIR
        config_dir.mkdir(parents=True, exist_ok=True)

        with open(config_dir / constants.CONFIG_USED_FILE, 'w') as f:
            json.dump(self.config, f, indent=2)

        config_str = json.dumps(self.config, sort_keys=True)
        config_hash = hashlib.sha256(config_str.encode()).hexdigest()
        with open(config_dir / constants.CONFIG_HASH_FILE, 'w') as f:
            f.write(config_hash)

        metadata = {
            'run_id': self.run_id,
            'start_time': datetime.now().isoformat(),
            'python_version': sys.version,
            'platform': sys.platform,
            'config_hash': config_hash,
            'working_directory': os.getcwd()
        }
        with open(config_dir / constants.RUN_METADATA_FILE, 'w') as f:
            json.dump(metadata, f, indent=2)

        return config_dir

    def _load_json(self, path: str) -> Dict[str, Any]:
        if not os.path.exists(path):
            raise ConfigurationError(f"File not found: {path}")
        try:
            with open(path, 'r') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {str(e)}")

    def _validate_schema(self) -> None:
        try:
            jsonschema.validate(instance=self.config, schema=self.schema)
        except jsonschema.ValidationError as e:
            raise ConfigurationError(f"Schema validation failed: {e.message}")

    def _validate_logic(self) -> None:
        """Rules the schema cannot express."""
        # --- Data Section ---
        data = self.config.get('data', {})
        for key in ['file_path', 'target']:
            if not data.get(key):
                raise ConfigurationError(f"Data '{key}' must be specified and non-empty.")

        # --- Pipeline Section ---
        pipeline = self.config.get('pipeline', {})
        pipeline_type = pipeline.get('type', 'penalty_path')
        if pipeline_type not in PIPELINE_TYPES:
            raise ConfigurationError(f"pipeline.type must be one of {PIPELINE_TYPES}, got '{pipeline_type}'.")
        if pipeline_type == 'estimator' and not pipeline.get('model'):
            raise ConfigurationError("pipeline.model must name a model when pipeline.type is 'estimator'.")

        # --- Parameters Section ---
        parameters = self.config.get('parameters')
        if not parameters:
            raise ConfigurationError("At least one entry in 'parameters' is required.")
        names = [p.get('name') for p in parameters]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Parameter names must be unique, got {names}.")

        # --- Resampling Section ---
        resampling = self.config.get('resampling', {})
        folds = resampling.get('folds', constants.DEFAULT_FOLDS)
        repeats = resampling.get('repeats', constants.DEFAULT_REPEATS)
        if folds < 2:
            raise ConfigurationError(f"resampling.folds must be >= 2, got {folds}.")
        if repeats < 1:
            raise ConfigurationError(f"resampling.repeats must be >= 1, got {repeats}.")
        if repeats > 1 and not resampling.get('shuffle', True):
            raise ConfigurationError("resampling.repeats > 1 requires resampling.shuffle to be true.")

        # --- Search Section ---
        search = self.config.get('search', {})
        method = search.get('method', 'grid')
        if method not in SEARCH_METHODS:
            raise ConfigurationError(f"search.method must be one of {SEARCH_METHODS}, got '{method}'.")

        metrics = search.get('metrics', ['rmse'])
        unknown = [m for m in metrics if m not in constants.METRIC_DIRECTIONS]
        if not metrics or unknown:
            raise ConfigurationError(
                f"search.metrics must be a non-empty subset of {sorted(constants.METRIC_DIRECTIONS)}, got {metrics}."
            )
        metric = search.get('metric')
        if metric is not None and metric not in metrics:
            raise ConfigurationError(f"search.metric '{metric}' is not listed in search.metrics {metrics}.")
        direction = search.get('direction')
        if direction is not None and direction not in constants.DIRECTIONS:
            raise ConfigurationError(f"search.direction must be one of {constants.DIRECTIONS}, got '{direction}'.")

        if method == 'grid' and not (search.get('grid') or search.get('levels')):
            raise ConfigurationError("Grid search needs either 'search.grid' or 'search.levels'.")

        if method == 'bayes':
            bayes = search.get('bayes', {})
            if bayes.get('initial', 5) < 1:
                raise ConfigurationError(f"search.bayes.initial must be >= 1, got {bayes.get('initial')}.")
            if bayes.get('iter', 10) < 0:
                raise ConfigurationError(f"search.bayes.iter must be >= 0, got {bayes.get('iter')}.")
            if bayes.get('n_candidates', constants.DEFAULT_N_CANDIDATES) < 1:
                raise ConfigurationError("search.bayes.n_candidates must be >= 1.")
            no_improve = bayes.get('no_improve')
            if no_improve is not None and no_improve < 1:
                raise ConfigurationError(f"search.bayes.no_improve must be >= 1 when provided, got {no_improve}.")
            decay = bayes.get('decay', {})
            if decay.get('slope', 0.25) < 0:
                raise ConfigurationError(f"search.bayes.decay.slope must be >= 0, got {decay.get('slope')}.")

        # --- Execution Section ---
        execution = self.config.get('execution', {})
        if 'n_jobs' in execution:
            n_jobs = execution['n_jobs']
            if n_jobs == 0 or n_jobs < -1:
                raise ConfigurationError(f"execution.n_jobs must be -1 (all cores) or a positive integer, got {n_jobs}")
        if execution.get('batch_size', constants.DEFAULT_BATCH_SIZE) < 1:
            raise ConfigurationError("execution.batch_size must be >= 1.")
        timeout = execution.get('timeout')
        if timeout is not None and timeout <= 0:
            raise ConfigurationError(f"execution.timeout must be > 0 when provided, got {timeout}.")

    def _validate_resources(self) -> None:
        """Grid explosion and memory guardrails."""
        resources = self.config.get('resources', {})
        search = self.config.get('search', {})

        # 1. Grid Explosion Check
        if search.get('method', 'grid') == 'grid':
            total_configs = self._grid_size(search)
            max_configs = resources.get('max_grid_configs', constants.DEFAULT_MAX_GRID_CONFIGS)
            if total_configs > max_configs:
                raise ConfigurationError(
                    f"Grid Explosion Detected! Total configurations ({total_configs}) exceeds "
                    f"safety limit ({max_configs}). Reduce the grid or increase 'resources.max_grid_configs'."
                )
            self.logger.info(f"Grid Size validated: {total_configs} combinations (Limit: {max_configs})")

        # 2. Memory Limits Check
        system_ram_mb = int(psutil.virtual_memory().total / (1024 * 1024))
        safe_ram_limit = int(system_ram_mb * 0.8)
        config_max_ram = resources.get('max_memory_mb', safe_ram_limit)

        if config_max_ram > system_ram_mb:
            self.logger.warning(
                f"Configured max_memory_mb ({config_max_ram}MB) exceeds physical system RAM ({system_ram_mb}MB). "
                "This may lead to instability."
            )

        self.config.setdefault('resources', {})['max_memory_mb'] = config_max_ram

    def _grid_size(self, search: Dict[str, Any]) -> int:
        grid = search.get('grid')
        if grid:
            try:
                if isinstance(grid, dict):
                    return len(ParameterGrid(grid))
                return len(grid)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid parameter grid: {str(e)}")

        levels = search.get('levels')
        counts = []
        for entry in self.config.get('parameters', []):
            if entry.get('kind') == constants.ORDINAL:
                counts.append(len(entry.get('values') or []))
            elif isinstance(levels, dict):
                counts.append(levels.get(entry.get('name'), 3))
            else:
                counts.append(levels)
        return math.prod(counts)

    def _propagate_seeds(self) -> None:
        """
        Derive per-component seeds from the master seed with
        non-overlapping offsets.
        """
        master_seed = self.config.setdefault('seed', constants.DEFAULT_SEED)

        self.config['_internal_seeds'] = {
            'resample': master_seed,
            'space_filling': master_seed + 1000,
            'surrogate': master_seed + 2000,
        }
        self.logger.debug(f"Seeds propagated from master ({master_seed}): {self.config['_internal_seeds']}")
