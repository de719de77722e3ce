from importlib.metadata import PackageNotFoundError, version

try:
    # Change here if project is renamed and does not equal the package name
    __version__ = version(__name__)
except PackageNotFoundError:
    __version__ = "unknown"
finally:
    del version, PackageNotFoundError

from .cmaes import CMAES, GenerationResult, Individual, TerminationData, fmax, fmin
from .matrix import CovarianceMatrix, Decomposition, PosDefCovError
from .options import CMAESOptions, InvalidOptionsError, InvalidOptionsReason, Mode, Weights
from .parameters import Parameters, TerminationParameters
from .restart import Restarter, RestartOptions, RestartResults, RestartStrategy
from .sampling import EvaluatedPoint, InvalidFunctionValueError, Sampler
from .state import State
from .termination import TerminationCheck, TerminationReason
from .utils import set_logger_config

__all__ = [
    "CMAES",
    "CMAESOptions",
    "CovarianceMatrix",
    "Decomposition",
    "EvaluatedPoint",
    "GenerationResult",
    "Individual",
    "InvalidFunctionValueError",
    "InvalidOptionsError",
    "InvalidOptionsReason",
    "Mode",
    "Parameters",
    "PosDefCovError",
    "Restarter",
    "RestartOptions",
    "RestartResults",
    "RestartStrategy",
    "Sampler",
    "State",
    "TerminationCheck",
    "TerminationData",
    "TerminationParameters",
    "TerminationReason",
    "Weights",
    "fmax",
    "fmin",
    "set_logger_config",
]
