from .base_engine import BaseEngine, SearchState

__all__ = ['BaseEngine', 'SearchState']
