"""
metrics.py
==========

Per-cell QC metrics and raw read counts.

Metric computation is delegated to ``scanpy.pp.calculate_qc_metrics``; this
module only names the results and applies the prefilter that drops cells
without any detected feature.
"""

import logging

import anndata as ad
import numpy as np
import pandas as pd
import scanpy as sc

from bcbio_single_cell.errors import NameCollisionError, ValidationError

logger = logging.getLogger(__name__)

MITO_CHROMOSOMES = ('MT', 'chrM', 'M', 'mitochondrion_genome')
METRIC_COLUMNS = [
    'n_count',
    'n_feature',
    'n_coding',
    'n_mito',
    'log10_features_per_count',
    'mito_ratio',
]


def _mito_features(var):
    mito = pd.Series(False, index=var.index)
    if 'chromosome' in var.columns:
        mito |= var['chromosome'].astype(str).isin(MITO_CHROMOSOMES).values
    if 'gene_name' in var.columns:
        mito |= var['gene_name'].astype(str).str.match(r'^(MT|mt)-').values
    return mito.values


def _coding_features(var):
    if 'gene_biotype' not in var.columns:
        return np.zeros(len(var), dtype=bool)
    return (var['gene_biotype'].astype(str) == 'protein_coding').values


def calculate_metrics(adata, prefilter=True):
    """
    Compute per-cell QC metrics.

    Parameters
    ----------
    adata : AnnData
        Raw counts, cells x features
    prefilter : bool
        Drop cells with no counts, no detected features, or an undefined
        ``log10_features_per_count``

    Returns
    -------
    AnnData
        Copy with metric columns in ``obs``
    """
    if any(col in adata.obs.columns for col in METRIC_COLUMNS):
        raise NameCollisionError(
            f"Metrics already present in obs: {[c for c in METRIC_COLUMNS if c in adata.obs.columns]}"
        )
    logger.info("Calculating QC metrics...")
    adata = adata.copy()

    qc_vars = pd.DataFrame({
        'mito': _mito_features(adata.var),
        'coding': _coding_features(adata.var),
    }, index=adata.var_names)
    obs_metrics, _ = sc.pp.calculate_qc_metrics(
        ad.AnnData(X=adata.X, obs=pd.DataFrame(index=adata.obs_names), var=qc_vars),
        qc_vars=['mito', 'coding'],
        percent_top=None,
        log1p=False,
        inplace=False,
    )

    n_count = obs_metrics['total_counts'].astype(np.int64)
    n_feature = obs_metrics['n_genes_by_counts'].astype(np.int64)
    with np.errstate(divide='ignore', invalid='ignore'):
        log10_ratio = np.log10(n_feature.values) / np.log10(n_count.values)
    log10_ratio[~np.isfinite(log10_ratio)] = np.nan

    adata.obs['n_count'] = n_count.values
    adata.obs['n_feature'] = n_feature.values
    adata.obs['n_coding'] = obs_metrics['total_counts_coding'].astype(np.int64).values
    adata.obs['n_mito'] = obs_metrics['total_counts_mito'].astype(np.int64).values
    adata.obs['log10_features_per_count'] = log10_ratio
    adata.obs['mito_ratio'] = obs_metrics['pct_counts_mito'].values / 100

    logger.info(f"  Mean features/cell: {adata.obs['n_feature'].mean():.1f}")
    logger.info(f"  Mean counts/cell: {adata.obs['n_count'].mean():.1f}")

    if prefilter:
        keep = (
            (adata.obs['n_count'] > 0)
            & (adata.obs['n_feature'] > 0)
            & adata.obs['log10_features_per_count'].notna()
        ).values
        n_dropped = int((~keep).sum())
        if n_dropped:
            logger.info(f"  Prefilter dropped {n_dropped} of {adata.n_obs} cells")
            adata = adata[keep].copy()
    return adata


def add_n_read(adata, n_read):
    """
    Add raw reads per cell as the ``n_read`` column of ``obs``.

    Parameters
    ----------
    adata : AnnData
        Imported object, modified in place
    n_read : pd.Series
        Raw read counts keyed by cell name, from :func:`counts.n_read`

    Returns
    -------
    AnnData
        The same object, with ``obs`` columns sorted alphabetically
    """
    if 'n_read' in adata.obs.columns:
        raise NameCollisionError("obs already contains an 'n_read' column")
    missing = adata.obs_names.difference(n_read.index)
    if len(missing):
        raise ValidationError(
            f"{len(missing)} cells have no raw read count: {missing[:5].tolist()}"
        )
    values = n_read.loc[adata.obs_names]
    if (values < 0).any():
        raise ValidationError("Raw read counts must be non-negative")
    adata.obs['n_read'] = values.astype(np.int64).values
    adata.obs = adata.obs[sorted(adata.obs.columns)]
    return adata
