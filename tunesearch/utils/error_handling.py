import functools
import logging

from tunesearch.utils.exceptions import TuneSearchException


_RESTING_STATES = ('idle', 'done')


def _abort_search(engine, entry_state, operation_name: str, logger: logging.Logger) -> None:
    """Return an engine interrupted by this call to IDLE so it can be run again."""
    state = getattr(engine, 'state', None)
    if state is None or state.value in _RESTING_STATES:
        return
    if entry_state is not None and entry_state.value not in _RESTING_STATES:
        # Already busy before this call; the running search owns the state
        return
    logger.warning(f"{operation_name} aborted while {state.value}; engine reset to idle.")
    engine.state = type(state)('idle')


def handle_engine_errors(operation_name: str):
    """
    Decorator for search entry points.

    Library exceptions propagate unchanged; anything else raised by the
    search is logged with its traceback and wrapped in TuneSearchException.
    Either way an engine left mid-search is put back to IDLE.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            engine = args[0] if args else None
            logger = getattr(engine, 'logger', None) or logging.getLogger(__name__)
            entry_state = getattr(engine, 'state', None)
            try:
                return func(*args, **kwargs)
            except TuneSearchException:
                _abort_search(engine, entry_state, operation_name, logger)
                raise
            except Exception as e:
                logger.error(f"{operation_name} failed: {e}", exc_info=True)
                _abort_search(engine, entry_state, operation_name, logger)
                raise TuneSearchException(f"{operation_name} failed: {str(e)}") from e
        return wrapper
    return decorator
