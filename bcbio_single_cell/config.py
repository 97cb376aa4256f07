"""
config.py
=========

YAML configuration of import options.

A config file holds the keyword arguments of
:func:`bcbio_single_cell.importer.bcbio_single_cell`::

    upload_dir: /path/to/upload
    sample_metadata_file: /path/to/metadata.csv
    organism: Homo sapiens
    ensembl_release: 104
    genome_build: GRCh38
    gff_file: null
    transgene_names: [EGFP]
    interesting_groups: [sample_name]
    workers: 4
"""

import os

import yaml

from bcbio_single_cell.errors import NotFoundError, ValidationError

DEFAULT_IMPORT_PARAMS = {
    'upload_dir': None,
    'sample_metadata_file': None,
    'organism': None,
    'ensembl_release': None,
    'genome_build': None,
    'gff_file': None,
    'transgene_names': None,
    'interesting_groups': ['sample_name'],
    'workers': 1,
}


def load_config(path):
    """Read a YAML config and fill in defaults for missing keys."""
    if not os.path.isfile(path):
        raise NotFoundError(f"Config file not found: {path}")
    with open(path, 'r') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValidationError(f"Config file must contain a mapping: {path}")
    unknown = sorted(set(data) - set(DEFAULT_IMPORT_PARAMS))
    if unknown:
        raise ValidationError(f"Unknown config keys in {path}: {unknown}")
    params = dict(DEFAULT_IMPORT_PARAMS)
    params.update(data)
    return params


def merge_params(config, overrides):
    """Overlay non-None ``overrides`` on ``config``."""
    params = dict(config)
    params.update({key: value for key, value in overrides.items() if value is not None})
    return params


def write_config(path, params=None):
    """Write import options to a YAML file and return its path."""
    config = dict(DEFAULT_IMPORT_PARAMS)
    config.update(params or {})
    output_dir = os.path.dirname(path)
    if output_dir and not os.path.exists(output_dir):
        os.makedirs(output_dir, exist_ok=True)
    with open(path, 'w') as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)
    return path
