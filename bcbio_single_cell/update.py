"""
update.py
=========

Upgrade objects written by earlier releases to the current layout.

Older releases used camelCase column and metadata names, and before the
switch to ``n_read`` the raw read count column was called ``nCount`` while
UMI counts were ``nUMI``.
"""

import logging

from bcbio_single_cell import __version__
from bcbio_single_cell.errors import NameCollisionError, ValidationError
from bcbio_single_cell.utils import snake_case

logger = logging.getLogger(__name__)

LEGACY_OBS_COLUMNS = {
    'nUMI': 'n_count',
    'nCount': 'n_read',
    'nGene': 'n_feature',
    'log10GenesPerUMI': 'log10_features_per_count',
}
DEFAULT_INTERESTING_GROUPS = ['sample_name']


def _check_unique(mapping, what):
    targets = list(mapping.values())
    dups = sorted({t for t in targets if targets.count(t) > 1})
    if dups:
        raise NameCollisionError(f"Renaming {what} produces duplicates: {dups}")
    return mapping


def _renamed_columns(columns):
    legacy = 'nUMI' in columns
    mapping = {}
    for col in columns:
        if legacy and col in LEGACY_OBS_COLUMNS:
            mapping[col] = LEGACY_OBS_COLUMNS[col]
        else:
            mapping[col] = snake_case(col)
    return _check_unique(mapping, 'obs columns')


def update_object(adata):
    """
    Return an upgraded copy of an imported object.

    Parameters
    ----------
    adata : AnnData
        Object created by any release of this package

    Returns
    -------
    AnnData
        Copy with current column names and metadata, ``uns['version']``
        set to the installed version
    """
    keys = _check_unique({key: snake_case(key) for key in adata.uns.keys()}, 'uns keys')
    uns = {keys[key]: value for key, value in adata.uns.items()}
    if uns.get('pipeline') != 'bcbio':
        raise ValidationError("Object was not created from a bcbio run")

    previous = uns.get('version')
    logger.info(f"Updating object from version {previous} to {__version__}")

    adata = adata.copy()
    adata.obs = adata.obs.rename(columns=_renamed_columns(list(adata.obs.columns)))
    adata.obs = adata.obs[sorted(adata.obs.columns)]

    groups = uns.get('interesting_groups')
    if groups is None or len(groups) == 0:
        groups = DEFAULT_INTERESTING_GROUPS
    uns['interesting_groups'] = [snake_case(g) for g in groups]
    if previous is not None:
        uns['previous_version'] = str(previous)
    uns['version'] = __version__

    adata.uns = uns
    return adata
