"""
Integration tests for popsim.simulator.

Tests cover:
- End-to-end simulation dimensions and value ranges
- Determinism for a fixed seed
- Replaying a key under a new seed
- Group behaviour with and without group-specific eQTL
- Warnings surfaced in the result
- AnnData export
"""

import numpy as np
import pandas as pd
import pytest

from conftest import make_genes, make_genotypes
from popsim import (
    GeneAnnotation,
    GenotypeData,
    ParameterError,
    PopSim,
    PopulationConfig,
    read_key,
    simulate_means,
    write_key,
)


def eqtl_architecture(result) -> pd.DataFrame:
    frame = result.key.data[["geneID", "eSNP.ID", "eQTL.type"]].copy()
    frame["eSNP.ID"] = frame["eSNP.ID"].fillna("NA")
    return frame.reset_index(drop=True)


class TestSimulate:
    """End-to-end tests for PopSim.simulate."""

    def test_basic_run(self, genes, genotypes):
        config = PopulationConfig(seed=1, eqtl_n=0.1)
        result = PopSim(config, genotypes, genes=genes).simulate().result

        assert len(result.means) == 1
        means = result.means[0]
        assert means.shape == (100, 6)
        assert list(means.index) == genes.genes["geneID"].tolist()
        assert list(means.columns) == genotypes.individuals
        assert result.groups == ["Group1"]

        key = result.key.data
        assert len(key) == 100
        assert key["eSNP.ID"].notna().sum() == 10
        assert set(key.loc[key["eSNP.ID"].isna(), "eQTL.type"]) == {"none"}

    def test_means_are_finite_and_positive(self, genes, genotypes):
        for quant_norm in (True, False):
            config = PopulationConfig(seed=3, quant_norm=quant_norm, group_prob=(0.4, 0.6))
            result = simulate_means(config, genotypes, genes=genes)
            for means in result.means:
                values = means.to_numpy()
                assert np.isfinite(values).all()
                assert (values >= config.mean_floor).all()

    def test_adjusted_columns_are_filled(self, genes, genotypes):
        result = simulate_means(PopulationConfig(seed=2), genotypes, genes=genes)
        key = result.key.data
        assert key["meanAdjusted"].notna().all()
        np.testing.assert_allclose(key["meanAdjusted"], result.means[0].mean(axis=1))
        np.testing.assert_allclose(
            key["cvAdjusted"],
            result.means[0].std(axis=1, ddof=0) / result.means[0].mean(axis=1),
        )

    def test_quant_norm_targets_configured_gamma(self):
        genotypes = make_genotypes(nvariants=500, nindividuals=4, spacing=4_000)
        genes = make_genes(1_000, spacing=2_000)
        config = PopulationConfig(seed=4, mean_shape=2.0, mean_rate=0.5)
        result = simulate_means(config, genotypes, genes=genes)
        column = result.means[0].iloc[:, 0]
        assert column.mean() == pytest.approx(4.0, rel=0.05)

    def test_without_quant_norm_means_follow_baseline(self, genes, genotypes):
        config = PopulationConfig(seed=5, quant_norm=False, eqtl_n=0)
        result = simulate_means(config, genotypes, genes=genes)
        sampled = result.key.data["meanSampled"].to_numpy()
        observed = result.means[0].mean(axis=1).to_numpy()
        # same ordering of genes by magnitude, up to individual noise
        assert np.corrcoef(np.log(sampled), np.log(observed))[0, 1] > 0.8

    def test_deterministic(self, genes, genotypes):
        config = PopulationConfig(seed=9, group_prob=(0.5, 0.5))
        first = simulate_means(config, genotypes, genes=genes)
        sim = PopSim(config, genotypes, genes=genes)
        sim.simulate()
        second = sim.simulate().result
        for a, b in zip(first.means, second.means):
            pd.testing.assert_frame_equal(a, b)
        pd.testing.assert_frame_equal(first.key.data, second.key.data)

    def test_different_seeds_differ(self, genes, genotypes):
        first = simulate_means(PopulationConfig(seed=1), genotypes, genes=genes)
        second = simulate_means(PopulationConfig(seed=2), genotypes, genes=genes)
        assert not np.allclose(first.means[0].to_numpy(), second.means[0].to_numpy())

    def test_genotypes_without_named_ids(self, genotypes):
        """Variant and individual labels from a default RangeIndex are usable."""
        unnamed = GenotypeData(
            genotypes.variants.reset_index(drop=True),
            pd.DataFrame(genotypes.dosages.to_numpy()),
        )
        config = PopulationConfig(seed=1, eqtl_n=0.1)
        result = simulate_means(config, unnamed, genes=make_genes())
        assert result.key.eqtl_mask().sum() == 10
        assert result.key.data["eSNP.ID"].dropna().isin(unnamed.variants.index).all()
        assert list(result.means[0].columns) == ["0", "1", "2", "3", "4", "5"]

        replayed = simulate_means(config.with_params(seed=2), unnamed, key=result.key)
        assert replayed.key.eqtl_mask().sum() == 10
        assert replayed.warnings == []

    def test_random_genes(self, genotypes):
        result = simulate_means(PopulationConfig(seed=6), genotypes, ngenes=30)
        assert result.means[0].shape == (30, 6)
        assert result.key.genenames == [f"Gene{i}" for i in range(1, 31)]
        assert (result.key.data["chromosome"] == "1").all()


class TestReplay:
    """Tests for simulating from an existing key."""

    def test_replay_keeps_architecture_changes_means(self, genes, genotypes):
        config = PopulationConfig(seed=10, eqtl_n=0.2)
        first = simulate_means(config, genotypes, genes=genes)
        second = simulate_means(config.with_params(seed=11), genotypes, key=first.key)

        pd.testing.assert_frame_equal(eqtl_architecture(first), eqtl_architecture(second))
        np.testing.assert_array_equal(
            first.key.data["eQTL.EffectSize"], second.key.data["eQTL.EffectSize"]
        )
        assert not np.allclose(first.means[0].to_numpy(), second.means[0].to_numpy())

    def test_replay_same_seed_reproduces_means(self, genes, genotypes):
        config = PopulationConfig(seed=12, eqtl_n=0.2, group_prob=(0.5, 0.5))
        first = simulate_means(config, genotypes, genes=genes)
        second = simulate_means(config, genotypes, key=first.key)
        for a, b in zip(first.means, second.means):
            pd.testing.assert_frame_equal(a, b)

    def test_replay_from_file(self, tmp_path, genes, genotypes):
        config = PopulationConfig(seed=13, eqtl_n=0.3)
        first = simulate_means(config, genotypes, genes=genes)
        path = tmp_path / "key.tsv"
        write_key(first.key, path)

        second = simulate_means(config, genotypes, key=read_key(path))
        pd.testing.assert_frame_equal(eqtl_architecture(first), eqtl_architecture(second))
        assert second.warnings == []

    def test_replay_on_other_cohort(self, genes, genotypes):
        config = PopulationConfig(seed=14, eqtl_n=0.2)
        first = simulate_means(config, genotypes, genes=genes)
        cohort = make_genotypes(nindividuals=10, seed=99)
        second = simulate_means(config, cohort, key=first.key)
        assert second.means[0].shape == (100, 10)
        pd.testing.assert_frame_equal(eqtl_architecture(first), eqtl_architecture(second))


class TestGroups:
    """Tests for multi-group simulation."""

    def test_groups_identical_without_de_or_group_specific(self, genes, genotypes):
        config = PopulationConfig(
            seed=20, group_prob=(0.5, 0.5), de_prob=0.0, eqtl_group_specific=0.0
        )
        result = simulate_means(config, genotypes, genes=genes)
        assert result.groups == ["Group1", "Group2"]
        pd.testing.assert_frame_equal(result.group("Group1"), result.group("Group2"))

    def test_only_group_specific_genes_differ(self, genes, genotypes):
        config = PopulationConfig(
            seed=21,
            group_prob=(0.5, 0.5),
            de_prob=0.0,
            eqtl_n=0.4,
            eqtl_group_specific=0.5,
            quant_norm=False,
        )
        result = simulate_means(config, genotypes, genes=genes)
        key = result.key.data
        specific = key["eQTL.type"].isin(["Group1", "Group2"]).to_numpy()
        assert specific.sum() == 20

        group1 = result.group("Group1").to_numpy()
        group2 = result.group("Group2").to_numpy()
        np.testing.assert_array_equal(group1[~specific], group2[~specific])
        assert not np.array_equal(group1[specific], group2[specific])

    def test_de_changes_group_means(self, genes, genotypes):
        config = PopulationConfig(
            seed=22, group_prob=(0.5, 0.5), de_prob=0.5, eqtl_n=0, quant_norm=False
        )
        result = simulate_means(config, genotypes, genes=genes)
        factors = result.key.data[["GroupDE.Group1", "GroupDE.Group2"]].to_numpy()
        ratio = result.group("Group2").to_numpy() / result.group("Group1").to_numpy()
        expected = (factors[:, 1] / factors[:, 0])[:, None]
        unclipped = (result.group("Group1").to_numpy() > config.mean_floor).all(axis=1)
        np.testing.assert_allclose(ratio[unclipped], np.broadcast_to(expected, ratio.shape)[unclipped])


class TestWarningsAndErrors:
    """Tests for warnings collected in the result and for raised errors."""

    def test_isolated_gene_warns(self, genotypes):
        genes = pd.concat(
            [
                make_genes(10),
                pd.DataFrame({"geneID": ["Isolated"], "chromosome": ["7"], "geneMiddle": [500]}),
            ],
            ignore_index=True,
        )
        result = simulate_means(PopulationConfig(seed=30, eqtl_n=1.0), genotypes, genes=genes)
        key = result.key.data.set_index("geneID")
        assert key.loc["Isolated", "eQTL.type"] == "none"
        assert any("Isolated" in w for w in result.warnings)
        assert result.means[0].loc["Isolated"].notna().all()

    def test_untyped_individual_warns(self):
        base = make_genotypes(nvariants=50)
        dosages = base.dosages.copy()
        dosages["ind3"] = np.nan
        genotypes = GenotypeData(base.variants, dosages)
        result = simulate_means(PopulationConfig(seed=31), genotypes, genes=make_genes(20))
        assert any("ind3" in w for w in result.warnings)
        assert np.isfinite(result.means[0]["ind3"]).all()

    def test_invalid_parameter(self):
        with pytest.raises(ParameterError) as excinfo:
            PopulationConfig(pop_mean_shape=-1.0)
        assert excinfo.value.field == "pop_mean_shape"

    def test_requires_gene_source(self, genotypes):
        with pytest.raises(ValueError, match="one of genes, key or ngenes"):
            PopSim(PopulationConfig(), genotypes)

    def test_requires_individuals(self):
        empty = GenotypeData(
            pd.DataFrame({"chromosome": ["1"], "position": [1]}, index=["snp1"]),
            pd.DataFrame(index=["snp1"]),
        )
        with pytest.raises(ValueError, match="no individuals"):
            PopSim(PopulationConfig(), empty, ngenes=5)

    def test_result_before_simulate(self, genes, genotypes):
        with pytest.raises(ValueError, match="simulate"):
            PopSim(PopulationConfig(), genotypes, genes=genes).result


def test_to_anndata(genotypes):
    anndata = pytest.importorskip("anndata")
    config = PopulationConfig(seed=40, group_prob=(0.5, 0.5), eqtl_n=0.2)
    result = simulate_means(config, genotypes, genes=GeneAnnotation(make_genes(25)))
    adata = result.to_anndata()

    assert isinstance(adata, anndata.AnnData)
    assert adata.shape == (12, 25)
    assert adata.obs_names[0] == "Group1_ind1"
    assert adata.obs["group"].tolist() == ["Group1"] * 6 + ["Group2"] * 6
    assert list(adata.var_names) == result.key.genenames
    np.testing.assert_allclose(adata.X[6:], result.group("Group2").to_numpy().T)
    assert adata.uns["popsim_config"]["seed"] == 40
