"""Configuration classes for population-scale mean simulation."""

from dataclasses import dataclass, field, replace
from typing import Any, Self, Sequence


class ParameterError(ValueError):
    """Raised when a configuration parameter is out of range.

    Attributes:
        field: Name of the offending parameter.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


@dataclass(frozen=True)
class CVBin:
    """Gamma parameters for gene coefficients of variation in one mean bin.

    Attributes:
        start: Lower bound (inclusive) of the baseline mean covered by this bin.
        shape: Shape parameter of the cv gamma distribution.
        rate: Rate parameter of the cv gamma distribution.
    """

    start: float
    shape: float
    rate: float


# cv shrinks as mean expression grows
DEFAULT_CV_BINS: tuple[CVBin, ...] = (
    CVBin(start=0.0, shape=4.0, rate=5.0),
    CVBin(start=5.0, shape=4.0, rate=6.67),
    CVBin(start=10.0, shape=4.0, rate=8.0),
    CVBin(start=20.0, shape=4.0, rate=10.0),
    CVBin(start=40.0, shape=4.0, rate=13.3),
    CVBin(start=80.0, shape=4.0, rate=16.0),
    CVBin(start=160.0, shape=4.0, rate=20.0),
    CVBin(start=320.0, shape=4.0, rate=26.7),
    CVBin(start=640.0, shape=4.0, rate=33.3),
    CVBin(start=1280.0, shape=4.0, rate=40.0),
)

GROUP_EFFECT_MODES = ("replace", "add")
MISSING_DOSAGE_POLICIES = ("mean", "zero")


@dataclass(frozen=True)
class PopulationConfig:
    """Configuration parameters for population-scale mean simulation.

    Instances are immutable. Use :meth:`with_params` to derive a modified
    configuration.

    Attributes:
        seed: Random seed for reproducibility.
        pop_mean_shape: Shape parameter for gamma distribution of baseline gene means.
        pop_mean_rate: Rate parameter for gamma distribution of baseline gene means.
        pop_cv_bins: Mean-binned gamma parameters for gene coefficients of variation.
        similarity_scale: Multiplier for the cv bin rates. Larger values make
            individuals more similar to each other.
        eqtl_n: Number of eQTL genes if greater than 1, otherwise the proportion
            of genes receiving an eQTL.
        eqtl_dist: Maximum distance (bp) between a gene midpoint and its eSNP.
        eqtl_maf_min: Minimum minor allele frequency of an eSNP.
        eqtl_maf_max: Maximum minor allele frequency of an eSNP.
        eqtl_es_shape: Shape parameter for gamma distribution of eQTL effect sizes.
        eqtl_es_rate: Rate parameter for gamma distribution of eQTL effect sizes.
        eqtl_signed: Whether effect sizes receive a random sign.
        eqtl_unique_esnps: Whether a variant may be the eSNP of at most one gene.
        eqtl_group_specific: Fraction of eQTL that are specific to one group.
        group_effect_mode: "replace" applies a group-specific gene's effect only
            in its group; "add" applies the global effect everywhere plus the
            group effect in its group.
        group_prob: Probability of a cell belonging to each group. The number of
            groups is the length of this sequence.
        de_prob: Probability of a gene being differentially expressed in a group.
        de_down_prob: Probability that a DE gene is downregulated.
        de_fac_loc: Mean of log-normal distribution for DE fold changes.
        de_fac_scale: Standard deviation of log-normal distribution for DE fold changes.
        missing_dosage: Imputation for missing genotypes, "mean" (population
            mean dosage of the variant) or "zero".
        quant_norm: Whether to quantile normalize the means onto the
            single-cell gamma distribution.
        mean_shape: Shape parameter of the target single-cell mean distribution.
        mean_rate: Rate parameter of the target single-cell mean distribution.
        mean_floor: Positive lower bound for every simulated mean.
    """

    seed: int = 757578
    pop_mean_shape: float = 0.34
    pop_mean_rate: float = 0.008
    pop_cv_bins: Sequence[CVBin] = field(default=DEFAULT_CV_BINS)
    similarity_scale: float = 1.0
    eqtl_n: float = 0.5
    eqtl_dist: int = 1_000_000
    eqtl_maf_min: float = 0.05
    eqtl_maf_max: float = 0.5
    eqtl_es_shape: float = 3.6
    eqtl_es_rate: float = 12.0
    eqtl_signed: bool = True
    eqtl_unique_esnps: bool = True
    eqtl_group_specific: float = 0.2
    group_effect_mode: str = "replace"
    group_prob: Sequence[float] = (1.0,)
    de_prob: float = 0.1
    de_down_prob: float = 0.5
    de_fac_loc: float = 0.1
    de_fac_scale: float = 0.4
    missing_dosage: str = "mean"
    quant_norm: bool = True
    mean_shape: float = 0.6
    mean_rate: float = 0.3
    mean_floor: float = 1e-8

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        # Normalize sequences so the frozen instance stays hashable
        object.__setattr__(self, "pop_cv_bins", tuple(self.pop_cv_bins))
        object.__setattr__(self, "group_prob", tuple(self.group_prob))
        self._validate()

    @property
    def ngroups(self) -> int:
        return len(self.group_prob)

    @property
    def group_names(self) -> list[str]:
        return [f"Group{i}" for i in range(1, self.ngroups + 1)]

    def with_params(self, **changes: Any) -> Self:
        """Return a new validated configuration with the given fields changed."""
        return replace(self, **changes)

    def _validate(self) -> None:
        """Validate that all parameters are within acceptable ranges."""
        # Validate positive distribution parameters
        positive_params = {
            "pop_mean_shape": self.pop_mean_shape,
            "pop_mean_rate": self.pop_mean_rate,
            "similarity_scale": self.similarity_scale,
            "eqtl_es_shape": self.eqtl_es_shape,
            "eqtl_es_rate": self.eqtl_es_rate,
            "mean_shape": self.mean_shape,
            "mean_rate": self.mean_rate,
            "mean_floor": self.mean_floor,
        }
        for name, value in positive_params.items():
            if not value > 0:
                raise ParameterError(name, f"must be positive, got {value}")

        if self.de_fac_scale < 0:
            raise ParameterError("de_fac_scale", "must be non-negative")
        if self.eqtl_n < 0:
            raise ParameterError("eqtl_n", f"must be non-negative, got {self.eqtl_n}")
        if self.eqtl_dist < 0:
            raise ParameterError("eqtl_dist", "must be non-negative")

        # Validate probabilities (must be between 0 and 1)
        prob_params = {
            "eqtl_maf_min": self.eqtl_maf_min,
            "eqtl_maf_max": self.eqtl_maf_max,
            "eqtl_group_specific": self.eqtl_group_specific,
            "de_prob": self.de_prob,
            "de_down_prob": self.de_down_prob,
        }
        for name, value in prob_params.items():
            if not 0 <= value <= 1:
                raise ParameterError(name, f"must be between 0 and 1, got {value}")
        if self.eqtl_maf_min > self.eqtl_maf_max:
            raise ParameterError(
                "eqtl_maf_min",
                f"cannot exceed eqtl_maf_max ({self.eqtl_maf_min} > {self.eqtl_maf_max})",
            )

        if self.group_effect_mode not in GROUP_EFFECT_MODES:
            raise ParameterError(
                "group_effect_mode", f"must be one of {GROUP_EFFECT_MODES}"
            )
        if self.missing_dosage not in MISSING_DOSAGE_POLICIES:
            raise ParameterError(
                "missing_dosage", f"must be one of {MISSING_DOSAGE_POLICIES}"
            )

        # Validate group_prob
        if len(self.group_prob) == 0:
            raise ParameterError("group_prob", "must contain at least one group")
        if any(p < 0 for p in self.group_prob):
            raise ParameterError("group_prob", "values must be non-negative")
        if abs(sum(self.group_prob) - 1.0) > 1e-6:
            raise ParameterError("group_prob", "must sum to 1")

        # Validate cv bins
        if len(self.pop_cv_bins) == 0:
            raise ParameterError("pop_cv_bins", "must contain at least one bin")
        starts = [b.start for b in self.pop_cv_bins]
        if starts[0] > 0:
            raise ParameterError("pop_cv_bins", "first bin must start at 0")
        if any(later <= earlier for earlier, later in zip(starts[:-1], starts[1:])):
            raise ParameterError("pop_cv_bins", "bin starts must be increasing")
        for b in self.pop_cv_bins:
            if not (b.shape > 0 and b.rate > 0):
                raise ParameterError(
                    "pop_cv_bins", f"bin at {b.start} needs positive shape and rate"
                )
