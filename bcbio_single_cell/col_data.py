"""
col_data.py
===========

Build per-cell metadata (``AnnData.obs``) by mapping cells to samples and
left-joining the sample metadata.
"""

import logging
import re

import pandas as pd

from bcbio_single_cell.errors import ValidationError

logger = logging.getLogger(__name__)


def check_samples_subset(sample_data, sample_dirs):
    """Every sample in the metadata must have a sample directory."""
    missing = [s for s in sample_data.index if s not in sample_dirs]
    if missing:
        raise ValidationError(
            f"Sample metadata contains samples without a sample directory: {missing}"
        )


def map_cells_to_samples(cells, samples):
    """
    Assign each cell to the sample whose ID prefixes its name.

    Cell names are ``<sample_id>_<barcode>``. When one sample ID is a prefix
    of another, the longest match wins.

    Parameters
    ----------
    cells : sequence of str
        Cell names
    samples : sequence of str
        Sample IDs

    Returns
    -------
    pd.Categorical
        Sample ID per cell, categories in ``samples`` order
    """
    samples = [str(s) for s in samples]
    alternatives = '|'.join(re.escape(s) for s in sorted(samples, key=len, reverse=True))
    pattern = f"^({alternatives})_"
    matched = pd.Series(list(cells), dtype=str).str.extract(pattern, expand=False)
    if matched.isna().any():
        unmatched = pd.Series(list(cells))[matched.isna()].tolist()
        raise ValidationError(
            f"{len(unmatched)} cells could not be mapped to a sample: {unmatched[:5]}"
        )
    return pd.Categorical(matched.tolist(), categories=samples)


def _as_categories(df):
    """Turn string columns into categoricals, as sample-level factors."""
    df = df.copy()
    for col in df.columns:
        if pd.api.types.is_object_dtype(df[col]) or pd.api.types.is_string_dtype(df[col]):
            df[col] = df[col].astype('category')
    return df


def make_col_data(cells, sample_data):
    """
    Join sample metadata onto cells.

    Parameters
    ----------
    cells : sequence of str
        Cell names, in count matrix order
    sample_data : pd.DataFrame
        Sample metadata indexed by sample ID

    Returns
    -------
    pd.DataFrame
        One row per cell, indexed and ordered like ``cells``, with a
        categorical ``sample_id`` column plus every sample metadata column
    """
    cells = pd.Index([str(c) for c in cells])
    sample_ids = [str(s) for s in sample_data.index]

    col_data = pd.DataFrame(index=cells)
    if len(sample_ids) == 1:
        col_data['sample_id'] = pd.Categorical(sample_ids * len(cells), categories=sample_ids)
    else:
        col_data['sample_id'] = map_cells_to_samples(cells, sample_ids)

    if 'sample_id' in sample_data.columns:
        logger.warning(
            "Sample metadata column 'sample_id' is replaced by the sample IDs "
            "derived from the sample directories."
        )
        sample_data = sample_data.drop(columns=['sample_id'])
    sample_data = _as_categories(sample_data)

    cell_levels = list(col_data['sample_id'].cat.categories)
    if set(cell_levels) != set(sample_ids):
        raise ValidationError(
            f"Sample ID levels differ between cells {cell_levels} and sample metadata {sample_ids}"
        )
    # Identical category order on both sides keeps the join key categorical.
    sample_data.index = pd.CategoricalIndex(sample_ids, categories=cell_levels, name=None)

    joined = col_data.join(sample_data, on='sample_id', how='left')
    if len(joined) != len(cells) or not joined.index.equals(cells):
        raise ValidationError("Joining sample metadata changed the cell rows")
    logger.info(f"Mapped {len(cells)} cells to {len(sample_ids)} samples")
    return joined
