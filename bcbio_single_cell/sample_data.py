"""
sample_data.py
==============

Load user-supplied sample metadata, or synthesize a minimal version.

Expected sheet columns:
- description: sample directory name given to bcbio (required)
- sequence: forward i5 index barcode, multiplexed runs only (optional)
- sample_name: human-readable sample name (optional, defaults to description)

Additional columns are kept as interesting-group candidates. Column names
are converted to snake_case, so ``sampleName`` and ``Sample Name`` both
become ``sample_name``.

Example multiplexed sheet::

    description,index,sequence,sample_name,treatment
    multiplexed,1,GGGGTTTT,sample1,A
    multiplexed,2,AACCAACC,sample2,B
"""

import logging
import os
import re
from collections import OrderedDict

import pandas as pd

from bcbio_single_cell.errors import (
    ConventionError,
    DuplicateKeyError,
    NotFoundError,
    ValidationError,
)
from bcbio_single_cell.utils import make_name, snake_case_columns

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ['description']
BARCODE_SUFFIX_PATTERN = re.compile(r'[ACGT]+$')
COMPLEMENT = str.maketrans('ACGTNacgtn', 'TGCANtgcan')


def reverse_complement(sequence):
    """
    Reverse complement a DNA sequence.

    >>> reverse_complement('AAAACCCG')
    'CGGGTTTT'
    """
    return str(sequence).translate(COMPLEMENT)[::-1]


def read_sample_sheet(file):
    """Read a CSV, TSV, or Excel sample sheet into a string-typed DataFrame."""
    if not os.path.isfile(file):
        raise NotFoundError(f"Sample metadata file not found: {file}")
    ext = os.path.splitext(file)[1].lower()
    if ext in ('.xlsx', '.xls'):
        df = pd.read_excel(file, dtype=str)
    elif ext in ('.tsv', '.txt'):
        df = pd.read_csv(file, sep='\t', dtype=str)
    else:
        df = pd.read_csv(file, dtype=str)
    df = df.dropna(how='all')
    return snake_case_columns(df)


def check_sequence_orientation(sample_ids, sequences):
    """
    Reject reverse complemented index barcodes.

    bcbio names multiplexed sample directories with the reverse complement
    of the i5 index, so the sheet must hold the forward sequence. If the
    sheet sequences are exactly the barcodes embedded in the directory
    names, the user copied the directory barcodes.
    """
    dir_sequences = []
    for sample_id in sample_ids:
        match = BARCODE_SUFFIX_PATTERN.search(sample_id)
        dir_sequences.append(match.group(0) if match else '')
    if sorted(dir_sequences) == sorted(str(s) for s in sequences):
        raise ConventionError(
            "It appears that the reverse complement sequence of the i5 index "
            "barcodes were input into the sample metadata 'sequence' column. "
            "bcbio outputs the revcomp into the sample directories, but the "
            "forward sequence should be used in the sample metadata."
        )


def _sample_ids(df):
    if 'sequence' in df.columns:
        return [
            make_name(f"{description}_{reverse_complement(sequence)}")
            for description, sequence in zip(df['description'], df['sequence'])
        ]
    return [make_name(description) for description in df['description']]


def _expand_lanes(df, lanes):
    """Repeat each sample once per detected lane."""
    lane_ids = sorted(set(lanes.values()))
    frames = []
    for lane in lane_ids:
        lane_df = df.copy()
        lane_df['lane'] = lane
        lane_df.index = [f"{sample_id}_{lane}" for sample_id in df.index]
        frames.append(lane_df)
    out = pd.concat(frames)
    # Keep rows of the same sample together, lanes in order.
    order = [f"{sample_id}_{lane}" for sample_id in df.index for lane in lane_ids]
    return out.loc[order]


def import_sample_data(file, sample_dirs, lanes=None):
    """
    Import a user-supplied sample metadata sheet.

    Parameters
    ----------
    file : str
        Path to the sample sheet
    sample_dirs : dict
        Sample ID -> sample directory, from :func:`run_dir.sample_dirs`
    lanes : dict, optional
        Sample ID -> lane, from :func:`run_dir.detect_lanes`

    Returns
    -------
    pd.DataFrame
        Sample metadata indexed by sample ID
    """
    df = read_sample_sheet(file)
    logger.info(f"Read {len(df)} rows from {file}")

    missing_cols = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing_cols:
        raise ValidationError(
            f"Sample metadata is missing required columns: {missing_cols}. "
            f"Found columns: {list(df.columns)}"
        )
    if df.duplicated().any():
        raise DuplicateKeyError(f"Sample metadata contains duplicated rows: {file}")

    if 'sequence' in df.columns:
        df['sequence'] = df['sequence'].str.strip().str.upper()
        check_sequence_orientation(list(sample_dirs), df['sequence'])

    df.index = pd.Index(_sample_ids(df), name='sample_id')
    if df.index.duplicated().any():
        dups = df.index[df.index.duplicated()].tolist()
        raise DuplicateKeyError(f"Duplicate sample IDs in sample metadata: {dups}")

    if 'sample_name' not in df.columns:
        df['sample_name'] = df['description']
    if df['sample_name'].duplicated().any():
        dups = df.loc[df['sample_name'].duplicated(), 'sample_name'].tolist()
        raise DuplicateKeyError(f"Duplicate sample names in sample metadata: {dups}")

    if lanes:
        df = _expand_lanes(df, lanes)
        df.index.name = 'sample_id'

    missing = [sample_id for sample_id in df.index if sample_id not in sample_dirs]
    if missing:
        raise ValidationError(
            f"Samples in {os.path.basename(file)} have no matching sample directory: "
            f"{missing}. Available: {list(sample_dirs)}"
        )
    return df


def select_samples(sample_data, sample_dirs):
    """
    Restrict the sample directories to the samples named in the metadata.

    Returns
    -------
    tuple
        (sample_dirs, all_samples)
    """
    if len(sample_data) >= len(sample_dirs):
        return sample_dirs, True
    selected = OrderedDict(
        (sample_id, sample_dirs[sample_id]) for sample_id in sample_data.index
    )
    names = ', '.join(os.path.basename(path) for path in selected.values())
    logger.info(f"Loading a subset of samples: {names}")
    return selected, False


def minimal_sample_data(sample_ids):
    """One row per sample with ``sample_name`` set to the sample ID."""
    sample_ids = [str(s) for s in sample_ids]
    return pd.DataFrame(
        {'sample_name': sample_ids, 'description': sample_ids},
        index=pd.Index(sample_ids, name='sample_id'),
    )
