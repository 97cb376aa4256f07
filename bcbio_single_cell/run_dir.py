"""
run_dir.py
==========

Locate the project and per-sample directories inside a bcbio-nextgen upload
directory.

bcbio writes one project directory named ``YYYY-MM-DD_<project>`` alongside
one directory per sample::

    upload/
    ├── 2018-01-01_indrops/
    │   ├── project-summary.yaml
    │   ├── data_versions.csv
    │   ├── programs.txt
    │   ├── bcbio-nextgen.log
    │   └── bcbio-nextgen-commands.log
    ├── multiplexed-AAAACCCC/
    └── multiplexed-GGGGTTTT/
"""

import logging
import os
import re
from collections import OrderedDict
from datetime import datetime

from bcbio_single_cell.errors import DuplicateKeyError, NotFoundError
from bcbio_single_cell.utils import make_name

logger = logging.getLogger(__name__)

PROJECT_DIR_PATTERN = re.compile(r'^(\d{4}-\d{2}-\d{2})_.+$')
LANE_PATTERN = re.compile(r'_(L\d{3})$')
PROJECT_SUMMARY_FILE = 'project-summary.yaml'


def resolve_upload_dir(upload_dir):
    """Return the canonical absolute path of an existing upload directory."""
    if upload_dir is None or not os.path.isdir(upload_dir):
        raise NotFoundError(f"Upload directory not found: {upload_dir}")
    return os.path.realpath(upload_dir)


def project_dir(upload_dir):
    """
    Find the bcbio project directory.

    Parameters
    ----------
    upload_dir : str
        bcbio upload directory

    Returns
    -------
    str
        Absolute path to the ``YYYY-MM-DD_<project>`` directory
    """
    upload_dir = resolve_upload_dir(upload_dir)
    candidates = sorted(
        entry for entry in os.listdir(upload_dir)
        if PROJECT_DIR_PATTERN.match(entry)
        and os.path.isfile(os.path.join(upload_dir, entry, PROJECT_SUMMARY_FILE))
    )
    if not candidates:
        raise NotFoundError(
            f"No project directory containing {PROJECT_SUMMARY_FILE} found in {upload_dir}"
        )
    if len(candidates) > 1:
        raise NotFoundError(
            f"Multiple project directories found in {upload_dir}: {candidates}"
        )
    return os.path.join(upload_dir, candidates[0])


def sample_dirs(upload_dir):
    """
    Find the per-sample directories.

    Every subdirectory other than the project directory is a sample
    directory. Keys are name-safe sample identifiers derived from the
    directory basenames.

    Returns
    -------
    OrderedDict
        Sample ID -> absolute sample directory path, sorted by sample ID
    """
    upload_dir = resolve_upload_dir(upload_dir)
    project = os.path.basename(project_dir(upload_dir))
    dirs = OrderedDict()
    for entry in sorted(os.listdir(upload_dir)):
        path = os.path.join(upload_dir, entry)
        if entry == project or entry.startswith('.') or not os.path.isdir(path):
            continue
        sample_id = make_name(entry)
        if sample_id in dirs:
            raise DuplicateKeyError(
                f"Sample directories {os.path.basename(dirs[sample_id])!r} and {entry!r} "
                f"both map to sample ID {sample_id!r}"
            )
        dirs[sample_id] = path
    if not dirs:
        raise NotFoundError(f"No sample directories found in {upload_dir}")
    logger.info(f"{len(dirs)} samples detected: {', '.join(dirs)}")
    return dirs


def detect_lanes(sample_dirs):
    """
    Parse sequencing lanes from ``_L001``-style directory suffixes.

    Samples without a lane suffix are left out of the result.

    Returns
    -------
    dict
        Sample ID -> lane (e.g. ``'L001'``)
    """
    lanes = {}
    for sample_id, path in sample_dirs.items():
        match = LANE_PATTERN.search(os.path.basename(path))
        if match:
            lanes[sample_id] = match.group(1)
    if lanes:
        logger.info(f"Lanes detected: {', '.join(sorted(set(lanes.values())))}")
    return lanes


def run_date(project_dir):
    """Parse the run date from the project directory name."""
    match = PROJECT_DIR_PATTERN.match(os.path.basename(project_dir))
    if not match:
        raise NotFoundError(f"Project directory name has no run date: {project_dir}")
    return datetime.strptime(match.group(1), '%Y-%m-%d').date()
