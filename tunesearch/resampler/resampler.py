import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import numpy as np
import pandas as pd
from sklearn.model_selection import KFold, RepeatedKFold, RepeatedStratifiedKFold, StratifiedKFold

from tunesearch.utils.exceptions import ConfigurationError
from tunesearch.utils import constants


def take_rows(data: Any, indices: np.ndarray) -> Any:
    """Positional row selection for pandas, NumPy and plain sequences."""
    if isinstance(data, (pd.DataFrame, pd.Series)):
        return data.iloc[indices]
    if isinstance(data, np.ndarray):
        return data[indices]
    return [data[i] for i in indices]


@dataclass(frozen=True, eq=False)
class Fold:
    """One train/validation split. Identity is the fold id."""
    fold_id: str
    repeat: int
    index: int
    train_idx: np.ndarray
    val_idx: np.ndarray

    def __eq__(self, other) -> bool:
        if not isinstance(other, Fold):
            return NotImplemented
        return self.fold_id == other.fold_id

    def __hash__(self) -> int:
        return hash(self.fold_id)

    def __repr__(self) -> str:
        return f"Fold({self.fold_id}, train={len(self.train_idx)}, val={len(self.val_idx)})"

    def training(self, data: Any) -> Any:
        return take_rows(data, self.train_idx)

    def validation(self, data: Any) -> Any:
        return take_rows(data, self.val_idx)


class Resampler:
    """
    Partitions a dataset into ``folds x repeats`` train/validation folds.

    Within one repeat the validation partitions are disjoint and together
    cover every row exactly once. Randomness comes only from ``seed``.
    """

    def __init__(self, folds: int = constants.DEFAULT_FOLDS, repeats: int = constants.DEFAULT_REPEATS,
                 seed: Optional[int] = constants.DEFAULT_SEED, stratify: Union[str, np.ndarray, None] = None,
                 shuffle: bool = True, logger: Optional[logging.Logger] = None):
        self.folds = folds
        self.repeats = repeats
        self.seed = seed
        self.stratify = stratify
        self.shuffle = shuffle
        self.logger = logger or logging.getLogger(__name__)
        self._validate(folds, repeats)

    @classmethod
    def from_config(cls, config: Dict[str, Any], logger: Optional[logging.Logger] = None) -> "Resampler":
        resampling = config.get('resampling', {})
        seed = config.get('_internal_seeds', {}).get('resample', config.get('seed', constants.DEFAULT_SEED))
        return cls(
            folds=resampling.get('folds', constants.DEFAULT_FOLDS),
            repeats=resampling.get('repeats', constants.DEFAULT_REPEATS),
            seed=seed,
            stratify=resampling.get('stratify'),
            shuffle=resampling.get('shuffle', True),
            logger=logger,
        )

    def split(self, data: Any, scheme: Optional[Dict[str, int]] = None) -> List[Fold]:
        """
        Build the fold list for ``data``.

        Args:
            data: DataFrame, array or sequence of observations.
            scheme: Optional ``{'folds': k, 'repeats': r}`` overriding the constructor values.

        Returns:
            List of ``k * r`` Fold objects, ordered by repeat then fold.
        """
        scheme = scheme or {}
        folds = scheme.get('folds', self.folds)
        repeats = scheme.get('repeats', self.repeats)
        self._validate(folds, repeats)

        n_rows = len(data)
        if n_rows < folds:
            raise ConfigurationError(f"Cannot split {n_rows} rows into {folds} folds.")

        strata = self._resolve_strata(data, folds)
        splitter = self._build_splitter(folds, repeats, strata)
        positions = np.arange(n_rows)

        if strata is not None:
            splits = splitter.split(positions, strata)
        else:
            splits = splitter.split(positions)

        result = []
        for i, (train_idx, val_idx) in enumerate(splits):
            repeat, index = i // folds + 1, i % folds + 1
            result.append(Fold(
                fold_id=f"Repeat{repeat}_Fold{index}",
                repeat=repeat,
                index=index,
                train_idx=np.asarray(train_idx),
                val_idx=np.asarray(val_idx),
            ))
        self.logger.debug(f"Resampler produced {len(result)} folds ({folds} folds x {repeats} repeats, seed={self.seed}).")
        return result

    def _build_splitter(self, folds: int, repeats: int, strata: Optional[np.ndarray]):
        if strata is not None:
            if repeats > 1:
                return RepeatedStratifiedKFold(n_splits=folds, n_repeats=repeats, random_state=self.seed)
            return StratifiedKFold(n_splits=folds, shuffle=self.shuffle,
                                   random_state=self.seed if self.shuffle else None)
        if repeats > 1:
            return RepeatedKFold(n_splits=folds, n_repeats=repeats, random_state=self.seed)
        return KFold(n_splits=folds, shuffle=self.shuffle, random_state=self.seed if self.shuffle else None)

    def _resolve_strata(self, data: Any, folds: int) -> Optional[np.ndarray]:
        if self.stratify is None:
            return None
        if isinstance(self.stratify, str):
            if not isinstance(data, pd.DataFrame) or self.stratify not in data.columns:
                raise ConfigurationError(f"Stratification column '{self.stratify}' not found in data.")
            strata = data[self.stratify].to_numpy()
        else:
            strata = np.asarray(self.stratify)
            if len(strata) != len(data):
                raise ConfigurationError("Stratification labels must have one entry per row.")

        # Stratified k-fold needs every class in every fold
        counts = pd.Series(strata).value_counts()
        if counts.min() < folds:
            self.logger.warning(
                f"Smallest stratum has {counts.min()} rows (< {folds} folds). Falling back to unstratified folds."
            )
            return None
        return strata

    def _validate(self, folds: int, repeats: int) -> None:
        if not isinstance(folds, (int, np.integer)) or folds < 2:
            raise ConfigurationError(f"folds must be an integer >= 2, got {folds}.")
        if not isinstance(repeats, (int, np.integer)) or repeats < 1:
            raise ConfigurationError(f"repeats must be an integer >= 1, got {repeats}.")
        if repeats > 1 and not self.shuffle:
            raise ConfigurationError("Repeated folds require shuffle=True, otherwise every repeat is identical.")
