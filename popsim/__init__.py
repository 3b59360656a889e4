"""Population-scale single-cell mean simulator with eQTL effects."""

from .config import CVBin, ParameterError, PopulationConfig
from .data import GeneAnnotation, GenotypeData
from .key import KeyTable, Origin, read_key, write_key
from .simulator import MeanSimulation, PopSim, simulate_means

__all__ = [
    "CVBin",
    "GeneAnnotation",
    "GenotypeData",
    "KeyTable",
    "MeanSimulation",
    "Origin",
    "ParameterError",
    "PopSim",
    "PopulationConfig",
    "read_key",
    "simulate_means",
    "write_key",
]
