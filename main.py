#!/usr/bin/env python
"""
tunesearch - Main Entry Point
Runs a grid search or a Bayesian optimization of a modeling pipeline,
estimating performance by repeated cross-validation.
"""
import sys
import logging
import argparse
import traceback
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

# Core Infrastructure
from tunesearch.config_manager import ConfigurationManager
from tunesearch.logging_config import LoggingConfigurator
from tunesearch.utils.exceptions import TuneSearchException
from tunesearch.utils.file_io import read_dataframe

# Search Components
from tunesearch.parameter_space import ParameterSpace
from tunesearch.resampler import Resampler
from tunesearch.pipeline_contract import EstimatorPipeline, PenaltyPathPipeline, PipelineContract
from tunesearch.pipeline_evaluator import PipelineEvaluator, extract_coefficients
from tunesearch.grid_search_engine import GridSearchEngine
from tunesearch.bayes_opt_engine import BayesOptEngine


def parse_arguments(argv=None):
    """
    Parse command-line arguments.

    Returns:
        argparse.Namespace: Parsed command-line arguments.
    """
    parser = argparse.ArgumentParser(
        description="tunesearch - Grid Search & Bayesian Optimization of modeling pipelines",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument(
        "--config",
        type=str,
        default="config/config.json",
        help="Path to the configuration JSON file"
    )

    parser.add_argument(
        "--schema",
        type=str,
        default="config/schema.json",
        help="Path to the configuration JSON schema"
    )

    parser.add_argument(
        "--run-id",
        type=str,
        default=None,
        help="Optional run identifier (defaults to timestamp if not provided)"
    )

    parser.add_argument(
        "--method",
        choices=["grid", "bayes"],
        default=None,
        help="Override search.method from the configuration"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration and setup without running the search"
    )

    return parser.parse_args(argv)


def build_contract(config: dict, space: ParameterSpace = None) -> PipelineContract:
    """
    Instantiate the pipeline contract described by the 'pipeline' section.

    When ``space`` is given, a penalty-path contract checks that every
    searchable penalty lies on its path.
    """
    data_cfg = config['data']
    pipeline_cfg = config.get('pipeline', {})
    drop_columns = data_cfg.get('drop_columns', [])

    if pipeline_cfg.get('type', 'penalty_path') == 'estimator':
        return EstimatorPipeline(
            model_name=pipeline_cfg['model'],
            target=data_cfg['target'],
            drop_columns=drop_columns,
            fixed_params=pipeline_cfg.get('fixed_params'),
        )

    contract = PenaltyPathPipeline(
        target=data_cfg['target'],
        drop_columns=drop_columns,
        penalty_bounds=tuple(pipeline_cfg.get('penalty_bounds', (1e-10, 1.0))),
        n_penalties=pipeline_cfg.get('n_penalties', 100),
    )
    if space is not None:
        contract.check_space(space)
    return contract


def setup_run_directory(config: dict, run_id: str, logger: logging.Logger) -> Path:
    """Create ``<base_results_dir>/<run_id>`` and point the engines at it."""
    base_results_dir = config.get('outputs', {}).get('base_results_dir', 'results')
    run_dir = (Path(base_results_dir) / run_id).absolute()
    run_dir.mkdir(parents=True, exist_ok=True)
    config.setdefault('outputs', {})['base_results_dir'] = str(run_dir)
    logger.info(f"Created run directory: {run_dir}")
    return run_dir


def run_search(config: dict, logger: logging.Logger):
    """
    Load the data, assemble the search components and run the configured engine.

    Returns:
        tuple: (engine, ResultStore)
    """
    data = read_dataframe(Path(config['data']['file_path']))
    logger.info(f"Data loaded: {len(data)} rows, {data.shape[1]} columns")

    search_cfg = config.get('search', {})
    space = ParameterSpace.from_config(config['parameters'])
    resampler = Resampler.from_config(config, logger)
    hook = extract_coefficients if config.get('pipeline', {}).get('extract_coefficients', False) else None
    evaluator = PipelineEvaluator(
        build_contract(config, space), data, search_cfg.get('metrics', ['rmse']), extraction_hook=hook, logger=logger
    )

    metric = search_cfg.get('metric')
    direction = search_cfg.get('direction')

    if search_cfg.get('method', 'grid') == 'bayes':
        engine = BayesOptEngine(config, logger)
        store = engine.run(space, resampler, evaluator, metric=metric, direction=direction)
    else:
        engine = GridSearchEngine(config, logger)
        store = engine.run(space, None, resampler, evaluator, metric=metric, direction=direction)

    return engine, store


def main(argv=None):
    """
    Main search orchestration function.

    Returns:
        int: Exit code (0 for success, 1 for errors, 130 when interrupted)
    """
    logger = None

    try:
        args = parse_arguments(argv)

        print("\n" + "=" * 80)
        print("    TUNESEARCH - HYPERPARAMETER SEARCH")
        print("=" * 80 + "\n")

        # ---------------------------------------------------------------
        # PHASE 0: INITIALIZATION & VALIDATION
        # ---------------------------------------------------------------
        config_manager = ConfigurationManager(config_path=args.config, schema_path=args.schema)
        config = config_manager.load_and_validate()

        if args.method:
            config.setdefault('search', {})['method'] = args.method
        if args.verbose:
            config.setdefault('logging', {})['level'] = 'DEBUG'

        logging_configurator = LoggingConfigurator(config)
        logging_configurator.setup()
        logger = logging_configurator.get_logger('tunesearch')

        logger.info(f"Configuration loaded from: {args.config}")

        run_id = args.run_id or config_manager.generate_run_id()
        config_manager.run_id = run_id
        run_dir = setup_run_directory(config, run_id, logger)
        config_manager.save_artifacts(str(run_dir))

        logger.info(f"Run ID: {run_id}")
        logger.info(f"Master seed: {config['seed']}")

        if args.dry_run:
            logger.info("Dry run mode: validation complete. Exiting without running the search.")
            print("\n[SUCCESS] Configuration validated successfully.")
            return 0

        # ---------------------------------------------------------------
        # PHASE 1: SEARCH
        # ---------------------------------------------------------------
        logger.info("\n" + "=" * 60)
        logger.info(f"PHASE 1: {config['search'].get('method', 'grid').upper()} SEARCH")
        logger.info("=" * 60)

        engine, store = run_search(config, logger)

        # ---------------------------------------------------------------
        # COMPLETION
        # ---------------------------------------------------------------
        logger.info("\n" + "-" * 60)
        logger.info("SEARCH COMPLETED" + (" (stopped early)" if engine.stopped_early else ""))
        logger.info(f"Top configurations:\n{store.show_best(config['search'].get('metric'), config['search'].get('direction')).to_string()}")
        logger.info(f"Output Directory: {engine.output_dir}")
        logger.info("-" * 60 + "\n")

        print(f"\n[SUCCESS] Search completed. Results saved to: {run_dir}")
        return 0

    except TuneSearchException as e:
        msg = f"Search Error: {str(e)}"
        print(f"\n[ERROR] {msg}")
        if logger:
            logger.critical(msg, exc_info=True)
        else:
            traceback.print_exc()
        return 1

    except KeyboardInterrupt:
        print("\n[INTERRUPTED] Search interrupted by user.")
        if logger:
            logger.warning("Search interrupted by user (Ctrl+C)")
        return 130

    except Exception as e:
        msg = f"Unexpected Error: {str(e)}"
        print(f"\n[CRITICAL] {msg}")
        if logger:
            logger.critical(msg, exc_info=True)
        else:
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
