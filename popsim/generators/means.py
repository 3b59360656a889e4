"""Per-individual gene mean simulation for population simulation."""

import logging
from typing import Sequence

import numpy as np
import pandas as pd
from numpy.random import Generator

from ..config import PopulationConfig
from ..data import GenotypeData
from .eqtl import GLOBAL_EQTL, NO_EQTL
from .genes import clip_to_floor

logger = logging.getLogger(__name__)


def individual_noise(
    rng: Generator,
    mean: float,
    cv: float,
    nindividuals: int,
) -> np.ndarray:
    """Sample one gene's mean for each individual around its baseline.

    Draws from a gamma distribution with mean ``mean`` and coefficient of
    variation ``cv``.
    """
    shape = 1 / (cv**2)
    return rng.gamma(shape=shape, scale=mean * (cv**2), size=nindividuals)


def resolve_dosage(dosage: np.ndarray, policy: str) -> np.ndarray:
    """Impute missing genotype dosages.

    Args:
        dosage: Dosage vector with NaN for missing genotypes.
        policy: "mean" replaces missing values with the mean observed dosage
            of the variant (0 if nothing is observed), "zero" with 0.

    Returns:
        Dosage vector without missing values.
    """
    missing = np.isnan(dosage)
    if not missing.any():
        return dosage
    fill = 0.0
    if policy == "mean" and not missing.all():
        fill = float(np.nanmean(dosage))
    return np.where(missing, fill, dosage)


def gene_group_effects(
    row: pd.Series,
    groups: Sequence[str],
    mode: str,
) -> dict[str, float]:
    """Effect size applied to one gene in each group.

    Global eQTL act in every group. A group-specific eQTL acts only in its
    group with its group effect size when ``mode`` is "replace"; with "add"
    the global effect acts everywhere and the group effect is added on top.
    """
    effects = dict.fromkeys(groups, 0.0)
    eqtl_type = row["eQTL.type"]
    if pd.isna(row["eSNP.ID"]) or eqtl_type == NO_EQTL:
        return effects

    if eqtl_type == GLOBAL_EQTL or mode == "add":
        for group in groups:
            effects[group] += float(row["eQTL.EffectSize"])
    if eqtl_type in effects:
        effects[eqtl_type] += float(row["eQTL.GroupEffectSize"])
    return effects


def simulate_gene_means(
    key: pd.DataFrame,
    genotypes: GenotypeData,
    config: PopulationConfig,
    gene_rngs: Sequence[Generator],
) -> list[pd.DataFrame]:
    """Calculate each gene's mean expression for each individual and group.

    For each gene, individual means are drawn once around the baseline mean
    at the gene's cv and shared by all groups. The eQTL effect
    ``dosage * effect size`` is then added and the result multiplied by the
    group's DE factor. Means are clipped to ``config.mean_floor``.

    Args:
        key: Key data, one row per gene.
        genotypes: Genotype data providing the individuals and dosages.
        config: Population configuration.
        gene_rngs: One random generator per gene, in key order.

    Returns:
        One DataFrame of genes x individuals per group, in group order.
    """
    groups = config.group_names
    genenames = key["geneID"].tolist()
    nind = genotypes.nindividuals
    means = {group: np.empty((len(key), nind)) for group in groups}

    for i, (rng, (_, row)) in enumerate(zip(gene_rngs, key.iterrows())):
        base = individual_noise(rng, row["meanSampled"], row["cvSampled"], nind)

        effects = gene_group_effects(row, groups, config.group_effect_mode)
        dosage = np.zeros(nind)
        if any(effects.values()):
            dosage = resolve_dosage(genotypes.dosage(row["eSNP.ID"]), config.missing_dosage)

        for group in groups:
            values = (base + dosage * effects[group]) * row[f"GroupDE.{group}"]
            means[group][i] = clip_to_floor(values, config.mean_floor)

    logger.debug(f"Simulated means for {len(key)} genes x {nind} individuals")
    return [
        pd.DataFrame(means[group], index=genenames, columns=genotypes.individuals)
        for group in groups
    ]
