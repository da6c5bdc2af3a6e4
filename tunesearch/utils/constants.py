# tunesearch/utils/constants.py

# --- Top-Level Result Directories ---
# Sequentially numbered for proper sorting

CONFIG_DIR = "01_RunConfiguration"          # Run config, metadata, seeds
GRID_SEARCH_DIR = "02_GridSearch"           # Exhaustive grid results
BAYES_OPT_DIR = "03_BayesianOptimization"   # Sequential search results + history

# --- File Names ---
CONFIG_USED_FILE = "config_used.json"
CONFIG_HASH_FILE = "config_hash.txt"
RUN_METADATA_FILE = "run_metadata.json"
METRICS_FILE = "metrics.parquet"
SUMMARY_FILE = "summary.parquet"
EXTRACTIONS_FILE = "extractions.parquet"
HISTORY_FILE = "search_history.parquet"
BEST_CONFIG_FILE = "best_configuration.json"

# --- Record Status ---
STATUS_OK = "ok"
STATUS_FAILED = "failed"

# --- Parameter Kinds ---
CONTINUOUS = "continuous"
DISCRETE = "discrete"
ORDINAL = "ordinal"
PARAMETER_KINDS = (CONTINUOUS, DISCRETE, ORDINAL)

# --- Optimization Direction ---
MINIMIZE = "minimize"
MAXIMIZE = "maximize"
DIRECTIONS = (MINIMIZE, MAXIMIZE)

# Metrics understood by the reference pipelines, with their natural direction
METRIC_DIRECTIONS = {
    "rmse": MINIMIZE,
    "mae": MINIMIZE,
    "rsq": MAXIMIZE,
}

# --- Search Defaults ---
DEFAULT_FOLDS = 5
DEFAULT_REPEATS = 1
DEFAULT_SEED = 42
DEFAULT_BATCH_SIZE = 64
DEFAULT_N_CANDIDATES = 1000
DEFAULT_MAX_GRID_CONFIGS = 10000
