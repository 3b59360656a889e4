"""Gene key tables describing the genetic architecture of a population."""

import logging
from enum import Enum
from pathlib import Path
from typing import Optional, Self, Union

import numpy as np
import pandas as pd
from numpy.random import Generator

from .config import PopulationConfig
from .data import GENE_COLUMNS, GeneAnnotation, GenotypeData
from .generators import (
    VariantIndex,
    assign_eqtl,
    complete_eqtl,
    sample_baseline_means,
    sample_binned_cv,
    simulate_group_de,
)
from .generators.eqtl import EQTL_COLUMNS, GLOBAL_EQTL, NO_EQTL

logger = logging.getLogger(__name__)

ADJUSTED_COLUMNS = ["meanAdjusted", "cvAdjusted"]
BASELINE_COLUMNS = ["meanSampled", "cvSampled"]


class Origin(Enum):
    """Whether a key field was supplied by the caller or sampled."""

    PROVIDED = "provided"
    SAMPLED = "sampled"


def group_de_columns(config: PopulationConfig) -> list[str]:
    return [f"GroupDE.{group}" for group in config.group_names]


def key_fields(config: PopulationConfig) -> list[str]:
    """Key columns that are either provided or sampled."""
    return BASELINE_COLUMNS + EQTL_COLUMNS + group_de_columns(config)


class KeyTable:
    """Per-gene record of every simulation decision.

    Use :meth:`generate` to build a fresh key from a gene annotation, or
    :meth:`from_existing` to replay a key from an earlier run. Both return a
    complete key that the mean sampler consumes the same way.

    Attributes:
        data: DataFrame with one row per gene and the columns geneID,
            chromosome, geneMiddle, meanSampled, cvSampled, meanAdjusted,
            cvAdjusted, eSNP.ID, eQTL.EffectSize, eQTL.type,
            eQTL.GroupEffectSize and one GroupDE.<group> column per group.
        origin: DataFrame of :class:`Origin` values recording, for each gene
            and provided-or-sampled field, where the value came from.
    """

    def __init__(self, data: pd.DataFrame, origin: pd.DataFrame) -> None:
        self.data = data
        self.origin = origin

    @classmethod
    def generate(
        cls,
        genes: Union[GeneAnnotation, pd.DataFrame],
        genotypes: GenotypeData,
        config: PopulationConfig,
        rng: Generator,
        warnings: Optional[list[str]] = None,
    ) -> Self:
        """Build a new key, sampling every field the annotation does not fix.

        Args:
            genes: Gene annotation, optionally pre-populated with key fields.
            genotypes: Genotype data supplying candidate eSNPs.
            config: Population configuration.
            rng: NumPy random generator.
            warnings: List collecting non-fatal problems (appended in place).

        Returns:
            Complete KeyTable.
        """
        if warnings is None:
            warnings = []
        frame = genes.genes if isinstance(genes, GeneAnnotation) else genes
        key = cls._prepare(frame, config)
        key._check_references(genotypes, config, warnings)
        key._sample_baseline(rng, config)
        key._sample_group_de(rng, config)

        logger.info("Assigning eQTL")
        eqtl = assign_eqtl(
            rng=rng,
            genes=key.data,
            fixed=key.eqtl_fixed(),
            index=VariantIndex(genotypes),
            config=config,
            warnings=warnings,
        )
        key._set_eqtl(complete_eqtl(rng, eqtl, config))

        unplaced = key.is_provided("eQTL.EffectSize") & ~key.eqtl_mask()
        key._drop_eqtl(unplaced, "genes with a provided effect size but no eSNP", warnings)
        return key

    @classmethod
    def from_existing(
        cls,
        key: Union["KeyTable", pd.DataFrame],
        genotypes: GenotypeData,
        config: PopulationConfig,
        rng: Generator,
        warnings: Optional[list[str]] = None,
        genes: Optional[Union[GeneAnnotation, pd.DataFrame]] = None,
    ) -> Self:
        """Replay a key from an earlier run.

        eQTL assignment is skipped: every gene keeps its eSNP, type and
        effect sizes. Genes whose eSNP is absent from ``genotypes``, whose
        group is not simulated, or which are absent from ``genes`` lose their
        eQTL effect with a warning. Fields missing from the key are sampled.

        Args:
            key: KeyTable or key DataFrame (e.g. from :func:`read_key`).
            genotypes: Genotype data for the new population.
            config: Population configuration.
            rng: NumPy random generator.
            warnings: List collecting non-fatal problems (appended in place).
            genes: Optional current gene annotation to check the key against.

        Returns:
            Complete KeyTable.
        """
        if warnings is None:
            warnings = []
        frame = key.data if isinstance(key, KeyTable) else key
        replay = cls._prepare(frame, config)
        replay.origin.loc[:, ["eSNP.ID", "eQTL.type"]] = Origin.PROVIDED
        if genes is not None:
            gene_frame = genes.genes if isinstance(genes, GeneAnnotation) else genes
            known = set(gene_frame["geneID"].astype(str))
            absent = ~replay.data["geneID"].isin(known).to_numpy()
            replay._drop_eqtl(absent, "genes absent from the gene annotation", warnings)
        replay._check_references(genotypes, config, warnings)
        replay._sample_baseline(rng, config)
        replay._sample_group_de(rng, config)
        replay._set_eqtl(complete_eqtl(rng, replay.data[EQTL_COLUMNS], config))
        return replay

    @classmethod
    def _prepare(cls, frame: pd.DataFrame, config: PopulationConfig) -> Self:
        genes = GeneAnnotation(frame).genes
        fields = key_fields(config)
        data = genes[GENE_COLUMNS].copy()
        origin = pd.DataFrame(
            np.full((len(data), len(fields)), Origin.SAMPLED, dtype=object),
            index=data.index,
            columns=fields,
        )
        for field in fields:
            if field in genes.columns:
                data[field] = genes[field]
                origin.loc[genes[field].notna().to_numpy(), field] = Origin.PROVIDED
            else:
                data[field] = np.nan
        for field in ADJUSTED_COLUMNS:
            data[field] = np.nan
        data["eSNP.ID"] = data["eSNP.ID"].astype(object)
        data["eQTL.type"] = data["eQTL.type"].astype(object)

        extra = [c for c in genes.columns if c.startswith("GroupDE.") and c not in fields]
        if extra:
            logger.debug(f"Ignoring DE columns for groups not simulated: {extra}")

        columns = (
            GENE_COLUMNS + BASELINE_COLUMNS + ADJUSTED_COLUMNS + EQTL_COLUMNS
            + group_de_columns(config)
        )
        return cls(data[columns].copy(), origin)

    @property
    def genenames(self) -> list[str]:
        return self.data["geneID"].tolist()

    @property
    def ngenes(self) -> int:
        return len(self.data)

    @property
    def group_names(self) -> list[str]:
        return [c.removeprefix("GroupDE.") for c in self.data.columns if c.startswith("GroupDE.")]

    def is_provided(self, field: str) -> np.ndarray:
        """Boolean mask of genes whose ``field`` was supplied by the caller."""
        return (self.origin[field] == Origin.PROVIDED).to_numpy()

    def eqtl_fixed(self) -> np.ndarray:
        """Boolean mask of genes whose eQTL assignment must not change."""
        return self.is_provided("eSNP.ID") | self.is_provided("eQTL.type")

    def eqtl_mask(self) -> np.ndarray:
        """Boolean mask of genes carrying an eQTL."""
        return self.data["eSNP.ID"].notna().to_numpy()

    def to_frame(self) -> pd.DataFrame:
        return self.data.copy()

    def set_adjusted(self, matrices: list[pd.DataFrame]) -> None:
        """Record each gene's mean and cv across all simulated columns."""
        stacked = np.hstack([m.to_numpy(dtype=float) for m in matrices])
        means = stacked.mean(axis=1)
        self.data["meanAdjusted"] = means
        self.data["cvAdjusted"] = stacked.std(axis=1) / means

    def _drop_eqtl(self, rows: np.ndarray, reason: str, warnings: list[str]) -> None:
        if not rows.any():
            return
        dropped = self.data.loc[rows, "geneID"].tolist()
        message = f"Dropped eQTL effect of {len(dropped)} {reason}: {', '.join(dropped)}"
        logger.warning(message)
        warnings.append(message)
        self.data.loc[rows, "eSNP.ID"] = None
        self.data.loc[rows, ["eQTL.EffectSize", "eQTL.GroupEffectSize"]] = np.nan
        self.data.loc[rows, "eQTL.type"] = NO_EQTL
        self.origin.loc[rows, EQTL_COLUMNS] = Origin.PROVIDED

    def _check_references(
        self,
        genotypes: GenotypeData,
        config: PopulationConfig,
        warnings: list[str],
    ) -> None:
        typed = self.is_provided("eQTL.type")
        explicit_none = typed & (self.data["eQTL.type"] == NO_EQTL).to_numpy()
        self.data.loc[explicit_none, "eSNP.ID"] = None

        esnps = self.data["eSNP.ID"]
        unknown = (esnps.notna() & ~esnps.isin(genotypes.variants.index)).to_numpy()
        self._drop_eqtl(unknown, "genes whose eSNP is not genotyped", warnings)

        eqtl_type = self.data["eQTL.type"]
        known_types = {NO_EQTL, GLOBAL_EQTL, *config.group_names}
        bad_type = (eqtl_type.notna() & ~eqtl_type.isin(known_types)).to_numpy()
        self._drop_eqtl(bad_type, "genes with an eQTL type that is not simulated", warnings)

        no_esnp = (
            typed
            & (self.data["eQTL.type"] != NO_EQTL).to_numpy()
            & self.data["eSNP.ID"].isna().to_numpy()
        )
        self._drop_eqtl(no_esnp, "genes with an eQTL type but no eSNP", warnings)

    def _sample_baseline(self, rng: Generator, config: PopulationConfig) -> None:
        need_mean = ~self.is_provided("meanSampled")
        if need_mean.any():
            self.data.loc[need_mean, "meanSampled"] = sample_baseline_means(
                rng,
                int(need_mean.sum()),
                config.pop_mean_shape,
                config.pop_mean_rate,
                config.mean_floor,
            )

        need_cv = ~self.is_provided("cvSampled")
        if need_cv.any():
            self.data.loc[need_cv, "cvSampled"] = sample_binned_cv(
                rng,
                self.data.loc[need_cv, "meanSampled"].to_numpy(dtype=float),
                config.pop_cv_bins,
                config.similarity_scale,
                config.mean_floor,
            )

    def _sample_group_de(self, rng: Generator, config: PopulationConfig) -> None:
        columns = group_de_columns(config)
        provided = np.column_stack([self.is_provided(c) for c in columns])
        if provided.all():
            return
        factors = simulate_group_de(
            rng=rng,
            genenames=self.genenames,
            groups=config.group_names,
            de_prob=config.de_prob,
            de_fac_loc=config.de_fac_loc,
            de_fac_scale=config.de_fac_scale,
            de_down_prob=config.de_down_prob,
        )
        for j, column in enumerate(columns):
            need = ~provided[:, j]
            self.data.loc[need, column] = factors[column].to_numpy()[need]

    def _set_eqtl(self, eqtl: pd.DataFrame) -> None:
        for column in EQTL_COLUMNS:
            self.data[column] = eqtl[column].to_numpy()

    def __len__(self) -> int:
        return self.ngenes

    def __repr__(self) -> str:
        return (
            f"KeyTable(ngenes={self.ngenes}, neqtl={int(self.eqtl_mask().sum())}, "
            f"groups={self.group_names})"
        )


def write_key(key: Union[KeyTable, pd.DataFrame], path: Union[str, Path]) -> None:
    """Write a key as a tab-separated table."""
    frame = key.to_frame() if isinstance(key, KeyTable) else key
    frame.to_csv(path, sep="\t", index=False)


def read_key(path: Union[str, Path]) -> pd.DataFrame:
    """Read a key written by :func:`write_key`."""
    # only empty cells are missing, so ids such as "NA" survive
    return pd.read_csv(
        path,
        sep="\t",
        dtype={"geneID": str, "chromosome": str, "eSNP.ID": object, "eQTL.type": object},
        keep_default_na=False,
        na_values=[""],
    )
