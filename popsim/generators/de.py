"""Group differential expression factors for population simulation."""

import numpy as np
import pandas as pd
from numpy.random import Generator


def simulate_group_de(
    rng: Generator,
    genenames: list[str],
    groups: list[str],
    de_prob: float,
    de_fac_loc: float,
    de_fac_scale: float,
    de_down_prob: float,
) -> pd.DataFrame:
    """Simulate differential expression factors between groups.

    For each group, randomly selects DE genes and assigns
    fold changes from a log-normal distribution. With a single group
    every factor is 1.

    Args:
        rng: NumPy random generator.
        genenames: Gene identifiers (index of the result).
        groups: Group names.
        de_prob: Probability of a gene being differentially expressed.
        de_fac_loc: Mean of log-normal distribution for DE fold changes.
        de_fac_scale: Standard deviation of log-normal distribution for DE fold changes.
        de_down_prob: Probability that a DE gene is downregulated.

    Returns:
        DataFrame of genes x groups with one column ``GroupDE.<group>`` per group.
    """
    ngenes = len(genenames)
    factors = pd.DataFrame(index=genenames)

    for group in groups:
        all_de_ratio = np.ones(ngenes)
        if len(groups) > 1:
            is_de = rng.choice(
                [True, False],
                size=ngenes,
                p=[de_prob, 1 - de_prob],
            )

            de_ratio = rng.lognormal(mean=de_fac_loc, sigma=de_fac_scale, size=is_de.sum())
            de_ratio[de_ratio < 1] = 1 / de_ratio[de_ratio < 1]

            is_downregulated = rng.choice(
                [True, False],
                size=len(de_ratio),
                p=[de_down_prob, 1 - de_down_prob],
            )
            de_ratio[is_downregulated] = 1.0 / de_ratio[is_downregulated]
            all_de_ratio[is_de] = de_ratio

        factors[f"GroupDE.{group}"] = all_de_ratio

    return factors
