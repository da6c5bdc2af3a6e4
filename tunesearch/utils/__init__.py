"""
Utility package setup.

Enables pandas Copy-on-Write globally so result tables built from the
store never alias each other.
"""

import pandas as pd

# Reduce implicit copies across the search.
pd.options.mode.copy_on_write = True
