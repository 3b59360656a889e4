"""Input containers for genotype data and gene annotation."""

import logging
from typing import Optional, Self

import numpy as np
import pandas as pd
from numpy.random import Generator

logger = logging.getLogger(__name__)

VARIANT_COLUMNS = ["chromosome", "position", "maf"]
GENE_COLUMNS = ["geneID", "chromosome", "geneMiddle"]


def compute_maf(dosages: pd.DataFrame) -> pd.Series:
    """Minor allele frequency of each variant from its dosages.

    Missing dosages are ignored. Variants with no observed genotype get a MAF
    of 0.
    """
    values = dosages.to_numpy(dtype=float)
    observed = (~np.isnan(values)).sum(axis=1)
    totals = np.nansum(values, axis=1)
    freq = np.divide(
        totals, 2 * observed, out=np.zeros(len(values)), where=observed > 0
    )
    return pd.Series(np.minimum(freq, 1 - freq), index=dosages.index, name="maf")


class GenotypeData:
    """Variant records and per-individual genotype dosages.

    Attributes:
        variants: DataFrame indexed by variant id with columns chromosome,
            position and maf.
        dosages: DataFrame of variants x individuals with values in
            {0, 1, 2} or NaN for missing genotypes.

    Example:
        >>> variants = pd.DataFrame(
        ...     {"chromosome": ["1", "1"], "position": [100, 900]},
        ...     index=["snp1", "snp2"],
        ... )
        >>> dosages = pd.DataFrame([[0, 1], [2, 1]], index=variants.index,
        ...                        columns=["ind1", "ind2"])
        >>> geno = GenotypeData(variants, dosages)
    """

    def __init__(self, variants: pd.DataFrame, dosages: pd.DataFrame) -> None:
        # ids are looked up as strings everywhere downstream
        variants = variants.copy()
        variants.index = variants.index.astype(str)
        dosages = dosages.copy()
        dosages.index = dosages.index.astype(str)
        dosages.columns = dosages.columns.astype(str)

        if variants.index.has_duplicates:
            raise ValueError("variant ids must be unique")
        if dosages.columns.has_duplicates:
            raise ValueError("individual ids must be unique")
        missing = [c for c in ["chromosome", "position"] if c not in variants.columns]
        if missing:
            raise ValueError(f"variants is missing columns: {missing}")
        if not variants.index.equals(dosages.index):
            if set(variants.index) != set(dosages.index):
                raise ValueError("variants and dosages must describe the same ids")
            dosages = dosages.loc[variants.index]

        dosages = dosages.astype(float)
        values = dosages.to_numpy()
        valid = np.isnan(values) | np.isin(values, [0.0, 1.0, 2.0])
        if not valid.all():
            raise ValueError("dosages must be 0, 1, 2 or missing (NaN)")

        variants["chromosome"] = variants["chromosome"].astype(str)
        variants["position"] = variants["position"].astype(np.int64)
        if "maf" not in variants.columns:
            logger.debug("Computing MAF from dosages")
            variants["maf"] = compute_maf(dosages)
        variants["maf"] = variants["maf"].astype(float)
        if not variants["maf"].between(0, 1).all():
            raise ValueError("maf values must lie in [0, 1]")

        self.variants = variants[VARIANT_COLUMNS]
        self.dosages = dosages

    @property
    def individuals(self) -> list[str]:
        return self.dosages.columns.tolist()

    @property
    def nindividuals(self) -> int:
        return self.dosages.shape[1]

    def has_variant(self, variant_id: str) -> bool:
        return variant_id in self.variants.index

    def dosage(self, variant_id: str) -> np.ndarray:
        """Dosage vector of a variant across individuals (NaN if missing)."""
        return self.dosages.loc[variant_id].to_numpy(dtype=float)

    def __len__(self) -> int:
        return len(self.variants)

    def __repr__(self) -> str:
        return (
            f"GenotypeData(nvariants={len(self)}, "
            f"nindividuals={self.nindividuals})"
        )


class GeneAnnotation:
    """Gene positions, optionally carrying pre-populated key fields.

    Attributes:
        genes: DataFrame with columns geneID, chromosome and geneMiddle plus
            any key columns the caller wants to fix (e.g. meanSampled,
            eSNP.ID). Missing values in those columns are sampled.
    """

    def __init__(self, genes: pd.DataFrame) -> None:
        missing = [c for c in GENE_COLUMNS if c not in genes.columns]
        if missing:
            raise ValueError(f"gene annotation is missing columns: {missing}")
        if genes["geneID"].duplicated().any():
            raise ValueError("geneID values must be unique")

        genes = genes.reset_index(drop=True).copy()
        genes["geneID"] = genes["geneID"].astype(str)
        genes["chromosome"] = genes["chromosome"].astype(str)
        genes["geneMiddle"] = genes["geneMiddle"].astype(np.int64)
        self.genes = genes

    @classmethod
    def random(
        cls,
        genotypes: GenotypeData,
        ngenes: int,
        rng: Generator,
        chromosomes: Optional[list[str]] = None,
    ) -> Self:
        """Place genes uniformly at random within the genotyped regions.

        Genes are split across chromosomes in proportion to the genotyped span
        of each chromosome.

        Args:
            genotypes: Genotype data defining the chromosomes and their spans.
            ngenes: Number of genes to place.
            rng: NumPy random generator.
            chromosomes: Restrict placement to these chromosomes.

        Returns:
            GeneAnnotation with genes named Gene1..GeneN.
        """
        if ngenes <= 0:
            raise ValueError("ngenes must be positive")
        spans = genotypes.variants.groupby("chromosome")["position"].agg(["min", "max"])
        if chromosomes is not None:
            spans = spans.loc[[str(c) for c in chromosomes]]
        if spans.empty:
            raise ValueError("genotype data contains no variants to place genes near")

        width = (spans["max"] - spans["min"] + 1).to_numpy(dtype=float)
        chrom = rng.choice(spans.index.to_numpy(), size=ngenes, p=width / width.sum())
        lo = spans.loc[chrom, "min"].to_numpy()
        hi = spans.loc[chrom, "max"].to_numpy()
        middle = rng.integers(lo, hi + 1)

        genes = pd.DataFrame(
            {
                "geneID": [f"Gene{i}" for i in range(1, ngenes + 1)],
                "chromosome": chrom,
                "geneMiddle": middle,
            }
        )
        genes = genes.sort_values(["chromosome", "geneMiddle"], kind="stable")
        genes["geneID"] = [f"Gene{i}" for i in range(1, ngenes + 1)]
        return cls(genes)

    def __len__(self) -> int:
        return len(self.genes)

    def __repr__(self) -> str:
        return f"GeneAnnotation(ngenes={len(self)})"
