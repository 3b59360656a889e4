"""
Pytest configuration and shared fixtures for popsim tests.

This module provides:
- Synthetic genotype data (variants with known positions and MAF)
- Gene annotations placed near those variants
- Small configurations that run quickly
"""

import numpy as np
import pandas as pd
import pytest

from popsim import GeneAnnotation, GenotypeData, PopulationConfig


def make_genotypes(
    nvariants: int = 200,
    nindividuals: int = 6,
    chromosome: str = "1",
    spacing: int = 10_000,
    maf: float = 0.25,
    seed: int = 1,
) -> GenotypeData:
    """Evenly spaced variants on one chromosome with binomial dosages."""
    rng = np.random.default_rng(seed)
    ids = [f"snp{i}" for i in range(1, nvariants + 1)]
    variants = pd.DataFrame(
        {
            "chromosome": chromosome,
            "position": np.arange(1, nvariants + 1) * spacing,
            "maf": maf,
        },
        index=ids,
    )
    dosages = pd.DataFrame(
        rng.binomial(2, maf, size=(nvariants, nindividuals)).astype(float),
        index=ids,
        columns=[f"ind{j}" for j in range(1, nindividuals + 1)],
    )
    return GenotypeData(variants, dosages)


def make_genes(ngenes: int = 100, chromosome: str = "1", spacing: int = 20_000) -> pd.DataFrame:
    """Evenly spaced genes on one chromosome."""
    return pd.DataFrame(
        {
            "geneID": [f"Gene{i}" for i in range(1, ngenes + 1)],
            "chromosome": chromosome,
            "geneMiddle": np.arange(1, ngenes + 1) * spacing,
        }
    )


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def genotypes() -> GenotypeData:
    """200 variants on chromosome 1 genotyped in 6 individuals."""
    return make_genotypes()


@pytest.fixture
def genes() -> GeneAnnotation:
    """100 genes on chromosome 1, all within reach of the fixture variants."""
    return GeneAnnotation(make_genes())


@pytest.fixture
def config() -> PopulationConfig:
    """Default configuration with a fixed seed."""
    return PopulationConfig(seed=42)


@pytest.fixture
def small_genotypes() -> GenotypeData:
    """Four variants with hand-written dosages, including a missing one."""
    variants = pd.DataFrame(
        {
            "chromosome": ["1", "1", "1", "2"],
            "position": [100, 200, 5_000, 100],
            "maf": [0.1, 0.3, 0.45, 0.2],
        },
        index=["snp1", "snp2", "snp3", "snp4"],
    )
    dosages = pd.DataFrame(
        [
            [0, 1, 2, np.nan],
            [1, 1, 0, 0],
            [2, 2, 1, 0],
            [0, 0, 1, 1],
        ],
        index=variants.index,
        columns=["ind1", "ind2", "ind3", "ind4"],
        dtype=float,
    )
    return GenotypeData(variants, dosages)
