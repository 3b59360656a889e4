"""eQTL assignment for population simulation."""

import logging

import numpy as np
import pandas as pd
from numpy.random import Generator

from ..config import PopulationConfig
from .index import VariantIndex

logger = logging.getLogger(__name__)

EQTL_COLUMNS = ["eSNP.ID", "eQTL.EffectSize", "eQTL.type", "eQTL.GroupEffectSize"]
NO_EQTL = "none"
GLOBAL_EQTL = "global"


def round_half_up(value: float) -> int:
    return int(np.floor(value + 0.5))


def _warn(warnings: list[str], message: str) -> None:
    logger.warning(message)
    warnings.append(message)


def target_eqtl_count(eqtl_n: float, ngenes: int) -> int:
    """Number of genes that should carry an eQTL.

    Values above 1 are an absolute count, anything else is a proportion of
    ``ngenes``.
    """
    if eqtl_n > 1:
        return int(eqtl_n)
    return round_half_up(eqtl_n * ngenes)


def draw_effect_sizes(
    rng: Generator,
    n: int,
    shape: float,
    rate: float,
    signed: bool = True,
) -> np.ndarray:
    """Sample eQTL effect sizes from a gamma distribution with random sign."""
    effects = rng.gamma(shape=shape, scale=1.0 / rate, size=n)
    if signed:
        effects *= rng.choice([-1.0, 1.0], size=n)
    return effects


def empty_eqtl_frame(index: pd.Index) -> pd.DataFrame:
    """eQTL columns for genes without any eQTL."""
    return pd.DataFrame(
        {
            "eSNP.ID": pd.Series([None] * len(index), index=index, dtype=object),
            "eQTL.EffectSize": np.nan,
            "eQTL.type": NO_EQTL,
            "eQTL.GroupEffectSize": np.nan,
        },
        index=index,
    )


def assign_eqtl(
    rng: Generator,
    genes: pd.DataFrame,
    fixed: np.ndarray,
    index: VariantIndex,
    config: PopulationConfig,
    warnings: list[str],
) -> pd.DataFrame:
    """Assign eSNPs and effect sizes to a random subset of genes.

    Genes are visited in random order until the requested number of eQTL
    genes is reached. Each visited gene picks one eSNP uniformly among its
    candidates and draws a signed gamma effect size. Genes without candidates
    are left without an eQTL. A fraction of the newly assigned eQTL is then
    made specific to one randomly chosen group, with its own effect size.
    Genes that already carry an effect size but no eSNP are visited first and
    keep their provided effect sizes.

    Args:
        rng: NumPy random generator.
        genes: Key data with geneID, chromosome, geneMiddle and, for fixed
            rows, the eQTL columns.
        fixed: Boolean mask of genes whose eQTL fields must not change.
        index: Candidate eSNP index over the genotype data.
        config: Population configuration.
        warnings: List collecting non-fatal problems (appended in place).

    Returns:
        DataFrame with the eQTL columns for every gene.
    """
    eqtl = empty_eqtl_frame(genes.index)
    for col in EQTL_COLUMNS:
        if col in genes.columns:
            eqtl.loc[fixed, col] = genes.loc[fixed, col]

    fixed_esnps = eqtl.loc[fixed, "eSNP.ID"].dropna()
    used: set[str] = set(fixed_esnps) if config.eqtl_unique_esnps else set()
    needed = max(target_eqtl_count(config.eqtl_n, len(genes)) - len(fixed_esnps), 0)

    order = rng.permutation(np.flatnonzero(~fixed))
    # genes carrying a provided effect size are visited first
    preferred = _provided(genes, "eQTL.EffectSize")[order]
    order = np.concatenate([order[preferred], order[~preferred]])
    assigned: list[int] = []
    no_candidates: list[str] = []
    chroms = genes["chromosome"].to_numpy()
    middles = genes["geneMiddle"].to_numpy()
    esnp_col = eqtl.columns.get_loc("eSNP.ID")

    for i in order:
        if len(assigned) >= needed:
            break
        candidates = index.candidates(
            chroms[i],
            middles[i],
            config.eqtl_dist,
            config.eqtl_maf_min,
            config.eqtl_maf_max,
        )
        if config.eqtl_unique_esnps:
            candidates = [c for c in candidates if c not in used]
        if not candidates:
            no_candidates.append(genes["geneID"].iat[i])
            continue
        esnp = candidates[rng.integers(len(candidates))]
        used.add(esnp)
        eqtl.iat[i, esnp_col] = esnp
        assigned.append(i)

    logger.debug(f"Assigned {len(assigned)} eQTL genes ({len(fixed_esnps)} fixed)")
    if no_candidates:
        _warn(
            warnings,
            f"{len(no_candidates)} visited genes skipped for lack of a candidate "
            f"eSNP: {', '.join(no_candidates)}",
        )
    if len(assigned) < needed:
        _warn(
            warnings,
            f"Requested {needed} eQTL genes but only {len(assigned)} could be "
            f"assigned an eSNP",
        )

    rows = eqtl.index[assigned]
    eqtl.loc[rows, "eQTL.EffectSize"] = draw_effect_sizes(
        rng, len(assigned), config.eqtl_es_shape, config.eqtl_es_rate, config.eqtl_signed
    )
    eqtl.loc[rows, "eQTL.type"] = GLOBAL_EQTL

    if config.ngroups > 1 and assigned:
        nspecific = round_half_up(config.eqtl_group_specific * len(assigned))
        specific = rng.choice(rows.to_numpy(), size=nspecific, replace=False)
        eqtl.loc[specific, "eQTL.type"] = rng.choice(config.group_names, size=nspecific)
        eqtl.loc[specific, "eQTL.GroupEffectSize"] = draw_effect_sizes(
            rng, nspecific, config.eqtl_es_shape, config.eqtl_es_rate, config.eqtl_signed
        )
        logger.debug(f"Made {nspecific} eQTL group-specific")

    for col in ["eQTL.EffectSize", "eQTL.GroupEffectSize"]:
        keep = np.zeros(len(genes), dtype=bool)
        keep[assigned] = True
        keep &= _provided(genes, col)
        eqtl.loc[keep, col] = genes.loc[keep, col].to_numpy()

    return eqtl


def _provided(genes: pd.DataFrame, column: str) -> np.ndarray:
    if column not in genes.columns:
        return np.zeros(len(genes), dtype=bool)
    return genes[column].notna().to_numpy()


def complete_eqtl(
    rng: Generator,
    eqtl: pd.DataFrame,
    config: PopulationConfig,
) -> pd.DataFrame:
    """Fill effect sizes and types missing from partially provided eQTL rows.

    Rows with an eSNP but no effect size get a fresh draw, rows with an eSNP
    but no type become global, and group-specific rows without a group
    effect size get a fresh draw. Rows without an eSNP lose any effect.
    """
    eqtl = eqtl.copy()
    has_esnp = eqtl["eSNP.ID"].notna().to_numpy()

    eqtl.loc[~has_esnp, "eQTL.type"] = NO_EQTL
    eqtl.loc[~has_esnp, ["eQTL.EffectSize", "eQTL.GroupEffectSize"]] = np.nan

    no_type = has_esnp & (eqtl["eQTL.type"].isna() | (eqtl["eQTL.type"] == NO_EQTL)).to_numpy()
    eqtl.loc[no_type, "eQTL.type"] = GLOBAL_EQTL

    no_effect = has_esnp & eqtl["eQTL.EffectSize"].isna().to_numpy()
    eqtl.loc[no_effect, "eQTL.EffectSize"] = draw_effect_sizes(
        rng, int(no_effect.sum()), config.eqtl_es_shape, config.eqtl_es_rate, config.eqtl_signed
    )

    group_specific = has_esnp & eqtl["eQTL.type"].isin(config.group_names).to_numpy()
    no_group_effect = group_specific & eqtl["eQTL.GroupEffectSize"].isna().to_numpy()
    eqtl.loc[no_group_effect, "eQTL.GroupEffectSize"] = draw_effect_sizes(
        rng,
        int(no_group_effect.sum()),
        config.eqtl_es_shape,
        config.eqtl_es_rate,
        config.eqtl_signed,
    )
    return eqtl
