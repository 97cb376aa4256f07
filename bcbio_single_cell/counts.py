"""
counts.py
=========

Load per-sample count matrices and raw read counts per cellular barcode.

Each sample directory holds the output of ``umis tagcount`` and
``umis cb_histogram``::

    <sample>/<sample>.mtx            features x cells, MatrixMarket
    <sample>/<sample>.mtx.rownames   feature IDs, one per line
    <sample>/<sample>.mtx.colnames   cellular barcodes, one per line
    <sample>/<sample>-barcodes.tsv   barcode <TAB> raw reads, no header

The per-sample readers are top-level functions taking a single
``(sample_id, sample_dir)`` tuple so they can be dispatched through any
backend in :mod:`bcbio_single_cell.parallel`.
"""

import logging
import os
from collections import OrderedDict

import anndata as ad
import numpy as np
import pandas as pd
import scanpy as sc
from scipy import sparse

from bcbio_single_cell.errors import (
    DuplicateKeyError,
    NotFoundError,
    SchemaMismatchError,
    ValidationError,
)
from bcbio_single_cell.parallel import SerialBackend
from bcbio_single_cell.utils import make_name

logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================

def _read_lines(path):
    if not os.path.isfile(path):
        raise NotFoundError(f"File not found: {path}")
    with open(path, 'r') as f:
        return [line.strip() for line in f if line.strip()]


def cell_names(sample_id, barcodes):
    """Compose globally unique cell names from sample ID and barcodes."""
    return [f"{sample_id}_{make_name(barcode)}" for barcode in barcodes]


def count_files(sample_dir):
    """Paths of the count matrix and its dimnames sidecars."""
    stem = os.path.join(sample_dir, os.path.basename(sample_dir))
    return {
        'matrix': f"{stem}.mtx",
        'rownames': f"{stem}.mtx.rownames",
        'colnames': f"{stem}.mtx.colnames",
    }


def barcodes_file(sample_dir):
    return os.path.join(sample_dir, f"{os.path.basename(sample_dir)}-barcodes.tsv")


# =============================================================================
# Per-sample workers
# =============================================================================

def read_sample_counts(item):
    """
    Read one sample's count matrix.

    Parameters
    ----------
    item : tuple
        (sample_id, sample_dir)

    Returns
    -------
    AnnData
        Cells x features, cells named ``<sample_id>_<barcode>``
    """
    sample_id, sample_dir = item
    files = count_files(sample_dir)
    if not os.path.isfile(files['matrix']):
        raise NotFoundError(f"Count matrix not found for sample {sample_id}: {files['matrix']}")

    features = _read_lines(files['rownames'])
    barcodes = _read_lines(files['colnames'])

    adata = sc.read_mtx(files['matrix'], dtype='int64').transpose()
    if adata.shape != (len(barcodes), len(features)):
        raise ValidationError(
            f"Count matrix for sample {sample_id} has shape {adata.shape[::-1]} "
            f"but {len(features)} row names and {len(barcodes)} column names"
        )
    if len(set(features)) != len(features):
        raise DuplicateKeyError(f"Duplicate feature IDs in count matrix for sample {sample_id}")

    adata.var_names = pd.Index(features)
    adata.obs_names = pd.Index(cell_names(sample_id, barcodes))
    adata.X = sparse.csr_matrix(adata.X)
    logger.info(f"  {sample_id}: {adata.n_obs} cells, {adata.n_vars} features")
    return adata


def read_sample_barcodes(item):
    """
    Read raw reads per cellular barcode for one sample.

    Returns
    -------
    tuple
        (sample_id, pd.Series of raw read counts indexed by barcode)
    """
    sample_id, sample_dir = item
    path = barcodes_file(sample_dir)
    if not os.path.isfile(path):
        raise NotFoundError(f"Cellular barcodes file not found for sample {sample_id}: {path}")
    df = pd.read_csv(path, sep='\t', header=None, names=['barcode', 'n_read'], dtype={'barcode': str})
    if df['n_read'].isna().any() or (df['n_read'] < 0).any():
        raise ValidationError(f"Invalid read counts in {path}")
    reads = pd.Series(df['n_read'].astype(np.int64).values, index=df['barcode'].values, name='n_read')
    return sample_id, reads


# =============================================================================
# Import
# =============================================================================

def import_counts(sample_dirs, backend=None):
    """
    Read and column-bind the count matrices of all samples.

    Parameters
    ----------
    sample_dirs : dict
        Sample ID -> sample directory
    backend : SerialBackend or PoolBackend, optional
        Executes the per-sample reads (default: serial)

    Returns
    -------
    AnnData
        Cells x features counts for all samples, in sample order
    """
    backend = backend or SerialBackend()
    logger.info(f"Importing counts for {len(sample_dirs)} samples ({backend!r})")
    adatas = backend.map(list(sample_dirs.items()), read_sample_counts)

    reference = adatas[0].var_names
    for sample_id, adata in zip(sample_dirs, adatas):
        if not adata.var_names.equals(reference):
            raise SchemaMismatchError(
                f"Feature IDs of sample {sample_id} do not match those of "
                f"sample {next(iter(sample_dirs))}"
            )

    if len(adatas) == 1:
        counts = adatas[0]
    else:
        counts = ad.concat(adatas, axis=0, merge='same')

    if not counts.obs_names.is_unique:
        dups = counts.obs_names[counts.obs_names.duplicated()].unique().tolist()
        raise DuplicateKeyError(f"Duplicate cell names after combining samples: {dups[:10]}")

    counts.X = sparse.csr_matrix(counts.X)
    logger.info(f"Total: {counts.n_obs} cells, {counts.n_vars} features")
    return counts


def import_reads(sample_dirs, backend=None):
    """
    Read raw read counts per cellular barcode for all samples.

    Returns
    -------
    OrderedDict
        Sample ID -> pd.Series of raw read counts indexed by barcode
    """
    backend = backend or SerialBackend()
    results = backend.map(list(sample_dirs.items()), read_sample_barcodes)
    return OrderedDict(results)


def n_read(cellular_barcodes):
    """
    Flatten per-sample raw read counts into one Series keyed by cell name.

    These are read counts before UMI deduplication, the values bcbio
    compares against ``minimum_barcode_depth``.
    """
    parts = []
    for sample_id, reads in cellular_barcodes.items():
        parts.append(pd.Series(
            reads.values,
            index=cell_names(sample_id, reads.index),
            name='n_read',
        ))
    out = pd.concat(parts)
    if not out.index.is_unique:
        raise DuplicateKeyError("Duplicate cell names in cellular barcode read counts")
    return out.astype(np.int64)
