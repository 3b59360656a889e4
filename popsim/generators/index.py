"""Lookup of candidate eSNPs near each gene."""

import numpy as np

from ..data import GenotypeData


class VariantIndex:
    """Position index of variants, one sorted block per chromosome.

    Args:
        genotypes: Genotype data to index.
    """

    def __init__(self, genotypes: GenotypeData) -> None:
        self._blocks: dict[str, tuple[np.ndarray, np.ndarray, np.ndarray]] = {}
        variants = genotypes.variants.sort_values(["chromosome", "position"], kind="stable")
        for chrom, block in variants.groupby("chromosome", sort=False):
            self._blocks[str(chrom)] = (
                block["position"].to_numpy(),
                block["maf"].to_numpy(),
                block.index.to_numpy(),
            )

    def candidates(
        self,
        chromosome: str,
        middle: int,
        dist: int,
        maf_min: float,
        maf_max: float,
    ) -> list[str]:
        """Return the variants that can act as eSNP for a gene.

        A variant qualifies when it lies on the gene's chromosome within
        ``dist`` bp of the gene midpoint (inclusive) and its MAF lies within
        ``[maf_min, maf_max]``.

        Returns:
            Variant ids ordered by position; empty if none qualify.
        """
        block = self._blocks.get(str(chromosome))
        if block is None:
            return []
        positions, mafs, ids = block
        lo = np.searchsorted(positions, middle - dist, side="left")
        hi = np.searchsorted(positions, middle + dist, side="right")
        keep = (mafs[lo:hi] >= maf_min) & (mafs[lo:hi] <= maf_max)
        return [str(v) for v in ids[lo:hi][keep]]


def find_candidate_esnps(
    genotypes: GenotypeData,
    chromosome: str,
    middle: int,
    dist: int,
    maf_min: float,
    maf_max: float,
) -> list[str]:
    """One-off candidate lookup without keeping an index around."""
    return VariantIndex(genotypes).candidates(chromosome, middle, dist, maf_min, maf_max)
