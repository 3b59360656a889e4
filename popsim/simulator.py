"""Population-scale gene mean simulator with eQTL effects."""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Self, Union

import numpy as np
import pandas as pd

from .config import PopulationConfig
from .data import GeneAnnotation, GenotypeData
from .exporters import to_anndata
from .generators import quantile_normalize_groups, simulate_gene_means
from .key import KeyTable

if TYPE_CHECKING:
    import anndata

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass
class MeanSimulation:
    """Result of a population mean simulation.

    Attributes:
        means: One genes x individuals DataFrame per group, in group order.
        key: Key table describing every gene of the population.
        groups: Group names, aligned with ``means``.
        individuals: Individual ids, the columns of every matrix.
        config: Configuration used for the run.
        warnings: Non-fatal problems met during the run.
    """

    means: list[pd.DataFrame]
    key: KeyTable
    groups: list[str]
    individuals: list[str]
    config: PopulationConfig
    warnings: list[str] = field(default_factory=list)

    def group(self, name: str) -> pd.DataFrame:
        """Mean matrix of one group."""
        return self.means[self.groups.index(name)]

    def to_anndata(self) -> "anndata.AnnData":
        """Export the means to AnnData. See :func:`popsim.exporters.to_anndata`."""
        return to_anndata(self)


class PopSim:
    """Population-scale gene mean simulator.

    This class simulates the mean expression of every gene in every
    individual of a genotyped cohort, with support for:
    - eQTL effects from nearby genetic variants
    - Group-specific eQTL effects
    - Differential expression between groups
    - Quantile normalization onto a single-cell mean distribution
    - Replaying the genetic architecture of an earlier run from its key

    Example:
        >>> config = PopulationConfig(eqtl_n=0.1, group_prob=(0.5, 0.5))
        >>> sim = PopSim(config, genotypes, genes=genes)
        >>> result = sim.simulate().result
        >>> result.means[0]  # genes x individuals DataFrame for Group1
    """

    def __init__(
        self,
        config: PopulationConfig,
        genotypes: GenotypeData,
        genes: Optional[Union[GeneAnnotation, pd.DataFrame]] = None,
        key: Optional[Union[KeyTable, pd.DataFrame]] = None,
        ngenes: Optional[int] = None,
    ) -> None:
        """Initialize the simulator.

        Args:
            config: PopulationConfig object with all parameters.
            genotypes: Genotype data of the individuals to simulate.
            genes: Gene annotation, optionally pre-populated with key fields.
            key: Key from an earlier run to replay. Takes precedence over
                ``genes`` for the gene list; ``genes`` is then only used to
                check that the key's genes still exist.
            ngenes: Number of randomly placed genes when neither ``genes``
                nor ``key`` is given.

        Raises:
            ValueError: If no gene source is given or the genotype data has
                no individuals.
        """
        if genes is None and key is None and ngenes is None:
            raise ValueError("one of genes, key or ngenes is required")
        if genotypes.nindividuals == 0:
            raise ValueError("genotype data contains no individuals")

        self.config = config
        self.genotypes = genotypes
        self.genes = genes
        self._input_key = key
        self._ngenes = ngenes

        # Will be populated during simulation
        self.key: KeyTable
        self.means: list[pd.DataFrame]
        self.warnings: list[str] = []

    def simulate(self) -> Self:
        """Run the full mean simulation pipeline.

        This method executes all simulation steps in order:
        1. Build a new key or replay the supplied one
        2. Sample each gene's mean for every individual and group
        3. Quantile normalize the means (if configured)
        4. Record the adjusted mean and cv of each gene in the key

        Returns:
            Self for method chaining.
        """
        cfg = self.config
        self.warnings = []
        self._check_genotypes()

        # Independent streams for key construction and per-gene sampling
        key_seq, noise_seq = np.random.SeedSequence(cfg.seed).spawn(2)
        key_rng = np.random.default_rng(key_seq)

        if self._input_key is not None:
            logger.info("Replaying key")
            self.key = KeyTable.from_existing(
                key=self._input_key,
                genotypes=self.genotypes,
                config=cfg,
                rng=key_rng,
                warnings=self.warnings,
                genes=self.genes,
            )
        else:
            genes = self.genes
            if genes is None:
                logger.info("Placing genes")
                genes = GeneAnnotation.random(self.genotypes, self._ngenes, key_rng)
            logger.info("Generating key")
            self.key = KeyTable.generate(
                genes=genes,
                genotypes=self.genotypes,
                config=cfg,
                rng=key_rng,
                warnings=self.warnings,
            )

        logger.info("Simulating population means")
        gene_rngs = [np.random.default_rng(s) for s in noise_seq.spawn(self.key.ngenes)]
        self.means = simulate_gene_means(
            key=self.key.data,
            genotypes=self.genotypes,
            config=cfg,
            gene_rngs=gene_rngs,
        )

        if cfg.quant_norm:
            logger.info("Quantile normalizing means")
            self.means = quantile_normalize_groups(
                self.means, cfg.mean_shape, cfg.mean_rate, cfg.mean_floor
            )

        self.key.set_adjusted(self.means)
        return self

    @property
    def result(self) -> MeanSimulation:
        """Simulation result. Requires :meth:`simulate` to have run."""
        if not hasattr(self, "means"):
            raise ValueError("Must call simulate() first")
        return MeanSimulation(
            means=self.means,
            key=self.key,
            groups=self.config.group_names,
            individuals=self.genotypes.individuals,
            config=self.config,
            warnings=list(self.warnings),
        )

    def _check_genotypes(self) -> None:
        untyped = self.genotypes.dosages.isna().all(axis=0)
        if len(self.genotypes) and untyped.any():
            message = (
                f"{int(untyped.sum())} individuals have no observed genotypes; "
                f"their dosages are imputed ({self.config.missing_dosage}): "
                f"{', '.join(str(i) for i in untyped.index[untyped])}"
            )
            logger.warning(message)
            self.warnings.append(message)


def simulate_means(
    config: PopulationConfig,
    genotypes: GenotypeData,
    genes: Optional[Union[GeneAnnotation, pd.DataFrame]] = None,
    key: Optional[Union[KeyTable, pd.DataFrame]] = None,
    ngenes: Optional[int] = None,
) -> MeanSimulation:
    """Simulate population means in one call. See :class:`PopSim`."""
    return PopSim(config, genotypes, genes=genes, key=key, ngenes=ngenes).simulate().result
