"""Generator modules for population-scale mean simulation."""

from .de import simulate_group_de
from .eqtl import assign_eqtl, complete_eqtl, draw_effect_sizes, target_eqtl_count
from .genes import clip_to_floor, sample_baseline_means, sample_binned_cv
from .index import VariantIndex, find_candidate_esnps
from .means import resolve_dosage, simulate_gene_means
from .quantnorm import quantile_normalize, quantile_normalize_groups

__all__ = [
    "VariantIndex",
    "assign_eqtl",
    "clip_to_floor",
    "complete_eqtl",
    "draw_effect_sizes",
    "find_candidate_esnps",
    "quantile_normalize",
    "quantile_normalize_groups",
    "resolve_dosage",
    "sample_baseline_means",
    "sample_binned_cv",
    "simulate_gene_means",
    "simulate_group_de",
    "target_eqtl_count",
]
