"""
run_info.py
===========

Readers for the provenance files bcbio writes into the project directory.

Only ``project-summary.yaml`` is required. Version tables and logs are
optional: when they are missing or empty a warning is logged and an empty
value is returned, so that minimal test runs still import.
"""

import logging
import os

import pandas as pd
import yaml

from bcbio_single_cell.errors import NotFoundError, ValidationError
from bcbio_single_cell.utils import make_name, snake_case

logger = logging.getLogger(__name__)


# =============================================================================
# Files
# =============================================================================

def import_yaml(path):
    """
    Load ``project-summary.yaml``.

    Parameters
    ----------
    path : str
        Path to the YAML file

    Returns
    -------
    dict
        Parsed run summary
    """
    if not os.path.isfile(path):
        raise NotFoundError(f"Run summary not found: {path}")
    with open(path, 'r') as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValidationError(f"Run summary is not a mapping: {path}")
    return data


def import_data_versions(path):
    """Load ``data_versions.csv`` (genome, resource, version)."""
    if not os.path.isfile(path):
        logger.warning(f"{os.path.basename(path)} not found. Data versions will be empty.")
        return pd.DataFrame(columns=['genome', 'resource', 'version'])
    try:
        return pd.read_csv(path, dtype=str)
    except pd.errors.EmptyDataError:
        logger.warning(f"{os.path.basename(path)} is empty.")
        return pd.DataFrame(columns=['genome', 'resource', 'version'])


def import_program_versions(path):
    """Load ``programs.txt``, a headerless ``program,version`` table."""
    if not os.path.isfile(path):
        logger.warning(f"{os.path.basename(path)} not found. Program versions will be empty.")
        return pd.DataFrame(columns=['program', 'version'])
    try:
        return pd.read_csv(path, header=None, names=['program', 'version'], dtype=str)
    except pd.errors.EmptyDataError:
        logger.warning(f"{os.path.basename(path)} is empty.")
        return pd.DataFrame(columns=['program', 'version'])


def import_log(path):
    """
    Read a bcbio log file into a list of lines.

    A missing or empty log is not fatal: a warning is logged and an empty
    list is returned.
    """
    name = os.path.basename(path)
    if not os.path.isfile(path):
        logger.warning(f"{name} file not found.")
        return []
    with open(path, 'r') as f:
        lines = [line.rstrip('\n') for line in f]
    lines = [line for line in lines if line.strip()]
    if not lines:
        logger.warning(f"{name} file is empty.")
    return lines


# =============================================================================
# Run summary accessors
# =============================================================================

def _yaml_samples(data):
    samples = data.get('samples') or []
    if not isinstance(samples, list):
        raise ValidationError("Run summary 'samples' entry is not a list")
    return samples


def genome_build_from_yaml(data):
    """Return the genome build of the first sample, if recorded."""
    samples = _yaml_samples(data)
    if not samples:
        return None
    return samples[0].get('genome_build')


def gtf_file_from_yaml(data):
    """
    Return the GTF file bcbio used for the run, if it is still reachable.

    The path is read from ``samples[0].genome_resources.rnaseq.transcripts``.
    """
    samples = _yaml_samples(data)
    if not samples:
        return None
    resources = samples[0].get('genome_resources') or {}
    gtf_file = (resources.get('rnaseq') or {}).get('transcripts')
    if not gtf_file:
        return None
    if not os.path.isfile(gtf_file):
        logger.warning(f"GTF file referenced in run summary not found: {gtf_file}")
        return None
    return gtf_file


def sample_data_from_yaml(data):
    """
    Build sample metadata from the run summary.

    Each ``samples[]`` entry contributes its ``description`` and the keys of
    its ``metadata`` mapping. List values are collapsed to comma-separated
    strings.

    Returns
    -------
    pd.DataFrame
        Indexed by sample ID
    """
    records = []
    for sample in _yaml_samples(data):
        description = sample.get('description')
        if description is None:
            raise ValidationError("Run summary sample is missing 'description'")
        record = {'description': str(description)}
        for key, value in (sample.get('metadata') or {}).items():
            if isinstance(value, list):
                value = ', '.join(str(v) for v in value)
            record[snake_case(key)] = value
        records.append(record)
    if not records:
        raise ValidationError("Run summary contains no samples")
    df = pd.DataFrame.from_records(records)
    df.index = pd.Index([make_name(d) for d in df['description']], name='sample_id')
    if 'sample_name' not in df.columns:
        df['sample_name'] = df['description']
    return df
