import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.stats import qmc
from sklearn.model_selection import ParameterGrid

from tunesearch.parameter_space.parameter_config import ParameterConfig, to_python_scalar
from tunesearch.parameter_space.transforms import Transform, get_transform
from tunesearch.utils.exceptions import ConfigurationError
from tunesearch.utils import constants

logger = logging.getLogger(__name__)

# Extra LHS draws allowed when discrete/ordinal dimensions produce duplicates
_MAX_RESAMPLE_ROUNDS = 10


@dataclass(frozen=True)
class ParameterSpec:
    """
    Declaration of one tunable dimension.

    ``low``/``high`` are expressed in transformed units; ``values`` lists the
    ordered levels of an ordinal parameter.
    """
    name: str
    kind: str = constants.CONTINUOUS
    low: Optional[float] = None
    high: Optional[float] = None
    values: Optional[Tuple[Any, ...]] = None
    transform: Union[str, Transform, None] = None
    label: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Parameter name must be a non-empty string.")
        if self.kind not in constants.PARAMETER_KINDS:
            raise ConfigurationError(
                f"Parameter '{self.name}': kind must be one of {constants.PARAMETER_KINDS}, got '{self.kind}'."
            )
        object.__setattr__(self, 'transform', get_transform(self.transform))

        if self.kind == constants.ORDINAL:
            if not self.values:
                raise ConfigurationError(f"Ordinal parameter '{self.name}' needs a non-empty 'values' list.")
            levels = tuple(to_python_scalar(v) for v in self.values)
            if len(set(levels)) != len(levels):
                raise ConfigurationError(f"Ordinal parameter '{self.name}' has duplicate levels.")
            if self.transform.name != 'identity':
                raise ConfigurationError(f"Ordinal parameter '{self.name}' cannot carry a transform.")
            object.__setattr__(self, 'values', levels)
            return

        if self.low is None or self.high is None:
            raise ConfigurationError(f"Parameter '{self.name}' needs both 'low' and 'high'.")
        low, high = float(self.low), float(self.high)
        if not (math.isfinite(low) and math.isfinite(high)):
            raise ConfigurationError(f"Parameter '{self.name}' has a non-finite range.")
        if low > high:
            raise ConfigurationError(f"Parameter '{self.name}' has an empty range [{low}, {high}].")
        object.__setattr__(self, 'low', low)
        object.__setattr__(self, 'high', high)
        self.transform.check_invertible(low, high)

        if self.kind == constants.DISCRETE:
            nlow, nhigh = self.native_range
            if nlow > nhigh:
                raise ConfigurationError(
                    f"Discrete parameter '{self.name}' contains no integer in its range."
                )

    @property
    def native_range(self) -> Tuple[Any, Any]:
        """Range in native units (integer bounds for discrete parameters)."""
        if self.kind == constants.ORDINAL:
            return self.values[0], self.values[-1]
        a = self.transform.to_native(self.low)
        b = self.transform.to_native(self.high)
        lo, hi = min(a, b), max(a, b)
        if self.kind == constants.DISCRETE:
            # Tolerate float error from inverse transforms, e.g. 2 ** log2(10)
            return int(math.ceil(lo - 1e-9)), int(math.floor(hi + 1e-9))
        return lo, hi

    def contains(self, value: Any) -> bool:
        if self.kind == constants.ORDINAL:
            return to_python_scalar(value) in self.values
        if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, float, np.integer, np.floating)):
            return False
        if self.kind == constants.DISCRETE and float(value) != int(value):
            return False
        lo, hi = self.native_range
        tol = 1e-9 * max(1.0, abs(lo), abs(hi))
        return lo - tol <= float(value) <= hi + tol

    def from_unit(self, u: float) -> Any:
        """Map a unit-interval coordinate to a native value."""
        u = min(max(float(u), 0.0), 1.0)
        if self.kind == constants.ORDINAL:
            index = min(int(u * len(self.values)), len(self.values) - 1)
            return self.values[index]
        native = self.transform.to_native(self.low + u * (self.high - self.low))
        if self.kind == constants.DISCRETE:
            lo, hi = self.native_range
            return int(min(max(int(round(native)), lo), hi))
        return native

    def to_unit(self, value: Any) -> float:
        """Map a native value to its unit-interval coordinate (transformed units)."""
        if self.kind == constants.ORDINAL:
            index = self.values.index(to_python_scalar(value))
            return (index + 0.5) / len(self.values)
        width = self.high - self.low
        if width == 0:
            return 0.5
        return (self.transform.to_transformed(value) - self.low) / width

    def levels(self, n: int) -> List[Any]:
        """``n`` evenly spaced values in transformed units (ordinal: every level)."""
        if self.kind == constants.ORDINAL:
            return list(self.values)
        if n < 1:
            raise ConfigurationError(f"Parameter '{self.name}': number of levels must be >= 1.")
        points = np.linspace(self.low, self.high, n) if n > 1 else np.array([(self.low + self.high) / 2])
        native = [self.transform.to_native(p) for p in points]
        if self.kind == constants.DISCRETE:
            lo, hi = self.native_range
            native = list(dict.fromkeys(int(min(max(round(v), lo), hi)) for v in native))
        return native

    @classmethod
    def from_dict(cls, entry: Mapping[str, Any]) -> "ParameterSpec":
        """Build a spec from a configuration entry (``range`` is ``[low, high]``)."""
        low = high = None
        if 'range' in entry:
            bounds = entry['range']
            if len(bounds) != 2:
                raise ConfigurationError(f"Parameter '{entry.get('name')}': 'range' must have two elements.")
            low, high = bounds
        values = entry.get('values')
        return cls(
            name=entry.get('name'),
            kind=entry.get('kind', constants.CONTINUOUS),
            low=entry.get('low', low),
            high=entry.get('high', high),
            values=tuple(values) if values is not None else None,
            transform=entry.get('transform'),
            label=entry.get('label'),
        )


class ParameterSpace:
    """
    Ordered collection of ParameterSpecs.

    All internal search math (grid spacing, sampling, surrogate distances)
    runs on transformed coordinates; every value that leaves the space as a
    ParameterConfig is native.
    """

    def __init__(self, specs: Optional[Sequence[ParameterSpec]] = None):
        self._specs: Dict[str, ParameterSpec] = {}
        for spec in specs or []:
            self.define(spec)

    @classmethod
    def from_config(cls, entries: Sequence[Mapping[str, Any]]) -> "ParameterSpace":
        if not entries:
            raise ConfigurationError("Parameter space must declare at least one parameter.")
        return cls([ParameterSpec.from_dict(e) for e in entries])

    def define(self, spec: ParameterSpec) -> "ParameterSpace":
        if spec.name in self._specs:
            raise ConfigurationError(f"Parameter '{spec.name}' is already defined.")
        self._specs[spec.name] = spec
        return self

    @property
    def names(self) -> List[str]:
        return list(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __iter__(self) -> Iterator[ParameterSpec]:
        return iter(self._specs.values())

    def __contains__(self, name: str) -> bool:
        return name in self._specs

    def __getitem__(self, name: str) -> ParameterSpec:
        if name not in self._specs:
            raise ConfigurationError(f"Unknown parameter '{name}'. Defined: {self.names}")
        return self._specs[name]

    def range(self, name: str) -> Tuple[Any, Any]:
        """Range in transformed units (first/last level for ordinal parameters)."""
        spec = self[name]
        if spec.kind == constants.ORDINAL:
            return spec.native_range
        return spec.low, spec.high

    def native_range(self, name: str) -> Tuple[Any, Any]:
        return self[name].native_range

    def transform(self, name: str) -> Transform:
        return self[name].transform

    def make_config(self, values: Mapping[str, Any]) -> ParameterConfig:
        """Validate a full assignment and return it as a ParameterConfig in space order."""
        self._require_non_empty()
        missing = [n for n in self.names if n not in values]
        unknown = [n for n in values if n not in self._specs]
        if missing or unknown:
            raise ConfigurationError(
                f"Configuration must assign exactly the space parameters; missing={missing}, unknown={unknown}"
            )
        for name in self.names:
            if not self._specs[name].contains(values[name]):
                raise ConfigurationError(
                    f"Value {values[name]!r} for '{name}' lies outside {self._specs[name].native_range}."
                )
        return ParameterConfig({name: values[name] for name in self.names})

    def sample_space_filling(self, n: int, seed: Union[int, Sequence[int], None] = None) -> List[ParameterConfig]:
        """
        Draw ``n`` distinct configurations with a Latin hypercube design over
        transformed coordinates.

        Discrete/ordinal dimensions can collapse draws onto the same
        configuration; extra draws are taken from the same design sequence,
        so fewer than ``n`` configurations are returned only when the space
        itself is smaller than ``n``.
        """
        self._require_non_empty()
        if n < 1:
            raise ConfigurationError(f"Space-filling sample size must be >= 1, got {n}.")

        engine = qmc.LatinHypercube(d=len(self), rng=np.random.default_rng(seed))
        configs: Dict[ParameterConfig, None] = {}
        for _ in range(_MAX_RESAMPLE_ROUNDS):
            needed = n - len(configs)
            for row in engine.random(max(needed, 1)):
                configs.setdefault(self.from_unit(row), None)
                if len(configs) == n:
                    break
            if len(configs) == n:
                break
        if len(configs) < n:
            logger.warning(f"Space-filling design produced only {len(configs)} distinct configurations (requested {n}).")
        return list(configs)

    def cross_product(self, grid_values: Mapping[str, Sequence[Any]]) -> List[ParameterConfig]:
        """Full Cartesian grid from explicit native value lists."""
        self._require_non_empty()
        missing = [n for n in self.names if n not in grid_values]
        unknown = [n for n in grid_values if n not in self._specs]
        if missing or unknown:
            raise ConfigurationError(
                f"Grid must list values for every parameter; missing={missing}, unknown={unknown}"
            )
        cleaned = {}
        for name in self.names:
            values = list(dict.fromkeys(to_python_scalar(v) for v in grid_values[name]))
            if not values:
                raise ConfigurationError(f"Grid values for '{name}' are empty.")
            bad = [v for v in values if not self._specs[name].contains(v)]
            if bad:
                raise ConfigurationError(
                    f"Grid values {bad} for '{name}' lie outside {self._specs[name].native_range}."
                )
            cleaned[name] = values

        return [
            ParameterConfig({name: point[name] for name in self.names})
            for point in ParameterGrid(cleaned)
        ]

    def regular_grid(self, levels: Union[int, Mapping[str, int]] = 3) -> List[ParameterConfig]:
        """Evenly spaced levels per dimension (in transformed units), crossed."""
        self._require_non_empty()
        if isinstance(levels, Mapping):
            counts = {name: levels.get(name, 3) for name in self.names}
        else:
            counts = {name: levels for name in self.names}
        return self.cross_product({name: self._specs[name].levels(counts[name]) for name in self.names})

    def to_unit(self, config: Mapping[str, Any]) -> np.ndarray:
        return np.array([self._specs[name].to_unit(config[name]) for name in self.names], dtype=float)

    def from_unit(self, vector: Sequence[float]) -> ParameterConfig:
        if len(vector) != len(self):
            raise ValueError(f"Expected {len(self)} coordinates, got {len(vector)}.")
        return ParameterConfig({
            name: self._specs[name].from_unit(u) for name, u in zip(self.names, vector)
        })

    def to_frame(self, configs: Sequence[Mapping[str, Any]]) -> pd.DataFrame:
        return pd.DataFrame([dict(c) for c in configs], columns=self.names)

    def _require_non_empty(self) -> None:
        if not self._specs:
            raise ConfigurationError("Parameter space is empty.")
