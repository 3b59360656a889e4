"""Export functionality for population mean simulation results."""

from dataclasses import asdict
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    import anndata

    from .simulator import MeanSimulation


def to_anndata(result: "MeanSimulation") -> "anndata.AnnData":
    """Export simulated means to an AnnData object.

    Each observation is one (group, individual) pair; groups are stacked in
    group order. Observations are named ``<group>_<individual>``.

    Requires the `anndata` package to be installed.
    Install with: `pip install popsim[anndata]`

    Args:
        result: Result of a mean simulation.

    Returns:
        AnnData object with:
        - X: mean matrix ((groups x individuals) x genes)
        - obs: 'group' and 'individual' columns
        - var: the key table, indexed by geneID
        - uns["popsim_config"]: simulation config as dict
        - uns["popsim_warnings"]: warnings collected during the run

    Raises:
        ImportError: If anndata is not installed.
    """
    try:
        import anndata
    except ImportError as e:
        raise ImportError(
            "anndata is required for to_anndata(). "
            "Install with: pip install popsim[anndata]"
        ) from e

    obs_names = [
        f"{group}_{individual}" for group in result.groups for individual in result.individuals
    ]
    obs = pd.DataFrame(
        {
            "group": np.repeat(result.groups, len(result.individuals)),
            "individual": np.tile(result.individuals, len(result.groups)),
        },
        index=obs_names,
    )
    X = np.vstack([m.to_numpy(dtype=float).T for m in result.means])

    var = result.key.to_frame().set_index("geneID", drop=False)
    var.index.name = None
    # AnnData cannot store mixed object columns
    var["eSNP.ID"] = var["eSNP.ID"].fillna("").astype(str)
    var["eQTL.type"] = var["eQTL.type"].astype(str)

    adata = anndata.AnnData(X=X, obs=obs, var=var)
    config = asdict(result.config)
    config["pop_cv_bins"] = [asdict(b) for b in result.config.pop_cv_bins]
    config["group_prob"] = list(result.config.group_prob)
    adata.uns["popsim_config"] = config
    adata.uns["popsim_warnings"] = list(result.warnings)
    return adata
