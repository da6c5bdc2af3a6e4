import abc
import enum
import logging
import threading
from pathlib import Path
from typing import Dict, Any

class SearchState(enum.Enum):
    """Lifecycle states shared by the search engines."""
    IDLE = "idle"
    INITIALIZING = "initializing"
    RUNNING = "running"
    ITERATING = "iterating"
    DONE = "done"

class BaseEngine(abc.ABC):
    """
    Abstract base class for all search engines.

    Provides common functionality for:
    - Configuration and logger attachment.
    - Standardized output directory management with sequential numbering.
    - State tracking and cooperative cancellation.
    """

    def __init__(self, config: Dict[str, Any], logger: logging.Logger):
        self.config = config
        self.logger = logger
        self.base_dir = Path(self.config.get('outputs', {}).get('base_results_dir', 'results'))
        self.engine_dir_name = self._get_engine_directory_name()
        self.output_dir = self.base_dir / self.engine_dir_name

        self.state = SearchState.IDLE
        self.stopped_early = False
        self._stop_event = threading.Event()

        self._setup_directories()

    @abc.abstractmethod
    def _get_engine_directory_name(self) -> str:
        """
        Determines the directory name for the engine's output.
        e.g., '02_GridSearch', '03_BayesianOptimization'
        This should be implemented by subclasses.
        """
        raise NotImplementedError("Subclasses must implement _get_engine_directory_name.")

    def _setup_directories(self):
        """
        Creates the main output directory for the engine.
        """
        skip_dirs = self.config.get('outputs', {}).get('skip_dir_creation', False)
        if skip_dirs:
            # Directory creation explicitly disabled (used for in-memory searches)
            return

        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.logger.info(f"Output directory for {self.__class__.__name__}: {self.output_dir}")

    def request_stop(self) -> None:
        """
        Ask the engine to stop at the next batch/iteration boundary.
        Work already in flight runs to completion and is recorded.
        """
        self.logger.info(f"Stop requested for {self.__class__.__name__}.")
        self._stop_event.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def _set_state(self, state: SearchState) -> None:
        self.logger.debug(f"{self.__class__.__name__}: {self.state.value} -> {state.value}")
        self.state = state

    @abc.abstractmethod
    def run(self, *args, **kwargs) -> Any:
        """
        Main execution method for the engine.
        This must be implemented by all subclasses.
        """
        pass
