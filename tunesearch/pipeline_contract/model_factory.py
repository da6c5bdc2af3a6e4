import inspect
from typing import Dict, Any, List
from sklearn.ensemble import (
    ExtraTreesRegressor,
    RandomForestRegressor,
    GradientBoostingRegressor,
    HistGradientBoostingRegressor,
)
from sklearn.neighbors import KNeighborsRegressor
from sklearn.linear_model import (
    LinearRegression,
    Ridge,
    Lasso,
    ElasticNet,
    HuberRegressor,
)
from sklearn.svm import SVR
from sklearn.tree import DecisionTreeRegressor
from sklearn.kernel_ridge import KernelRidge

from tunesearch.utils.exceptions import ConfigurationError

class ModelFactory:
    """
    Factory for creating scikit-learn estimators from a name and a resolved
    parameter dictionary.
    """

    MODELS = {
        # Ensembles (Trees)
        'ExtraTreesRegressor': ExtraTreesRegressor,
        'RandomForestRegressor': RandomForestRegressor,
        'DecisionTreeRegressor': DecisionTreeRegressor,
        'GradientBoostingRegressor': GradientBoostingRegressor,
        'HistGradientBoostingRegressor': HistGradientBoostingRegressor,

        # Nearest Neighbors
        'KNeighborsRegressor': KNeighborsRegressor,

        # Linear / Kernel
        'LinearRegression': LinearRegression,
        'Ridge': Ridge,
        'Lasso': Lasso,
        'ElasticNet': ElasticNet,
        'HuberRegressor': HuberRegressor,
        'KernelRidge': KernelRidge,
        'SVR': SVR,
    }

    @classmethod
    def create(cls, model_name: str, params: Dict[str, Any] = None) -> Any:
        """
        Create and return an instantiated model.
        """
        if params is None:
            params = {}

        if model_name not in cls.MODELS:
            raise ConfigurationError(f"Unknown model name: {model_name}. Available: {cls.get_available_models()}")

        model_class = cls.MODELS[model_name]
        return model_class(**cls._filter_params(model_class, params))

    @classmethod
    def get_available_models(cls) -> List[str]:
        """Return list of all supported model names."""
        return list(cls.MODELS.keys())

    @classmethod
    def accepted_parameters(cls, model_name: str) -> List[str]:
        """Constructor keywords of ``model_name``, i.e. the tunable dimensions it understands."""
        if model_name not in cls.MODELS:
            raise ConfigurationError(f"Unknown model name: {model_name}. Available: {cls.get_available_models()}")
        return _constructor_keywords(cls.MODELS[model_name])

    @staticmethod
    def _filter_params(model_class, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Remove parameters from `params` that are not accepted by `model_class` constructor.
        """
        sig = inspect.signature(model_class.__init__)
        if any(p.kind == p.VAR_KEYWORD for p in sig.parameters.values()):
            return params
        valid_keys = set(_constructor_keywords(model_class))
        return {k: v for k, v in params.items() if k in valid_keys}


def _constructor_keywords(model_class) -> List[str]:
    sig = inspect.signature(model_class.__init__)
    return [
        p.name for p in sig.parameters.values()
        if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY) and p.name != "self"
    ]
