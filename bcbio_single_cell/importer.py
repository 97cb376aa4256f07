"""
importer.py
===========

Import a bcbio-nextgen single-cell RNA-seq run into an AnnData object.

Steps:
1. Run info: locate directories, read the run summary, versions and logs
2. Sample metadata: user sheet, run summary, or minimal fallback
3. Counts: per-sample matrices, optionally in parallel
4. Feature metadata: Ensembl BioMart, GTF/GFF, or empty ranges
5. Column data: map cells to samples and join sample metadata
6. Metadata: provenance stamped into ``uns``
7. Metrics: QC metrics, prefilter, raw reads per cell

Usage:
    >>> from bcbio_single_cell import bcbio_single_cell
    >>> adata = bcbio_single_cell('upload', sample_metadata_file='metadata.csv')
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime

import yaml

from bcbio_single_cell import __version__
from bcbio_single_cell.annotation import resolve_row_annotation
from bcbio_single_cell.col_data import check_samples_subset, make_col_data
from bcbio_single_cell.counts import import_counts, import_reads, n_read
from bcbio_single_cell.errors import NotFoundError, ValidationError
from bcbio_single_cell.logs import parse_commands_log
from bcbio_single_cell.metrics import add_n_read, calculate_metrics
from bcbio_single_cell.parallel import get_backend
from bcbio_single_cell.run_dir import (
    detect_lanes,
    project_dir,
    resolve_upload_dir,
    run_date,
    sample_dirs,
)
from bcbio_single_cell.run_info import (
    genome_build_from_yaml,
    gtf_file_from_yaml,
    import_data_versions,
    import_log,
    import_program_versions,
    import_yaml,
    sample_data_from_yaml,
)
from bcbio_single_cell.sample_data import (
    import_sample_data,
    minimal_sample_data,
    select_samples,
)
from bcbio_single_cell.utils import log_header, snake_case

logger = logging.getLogger(__name__)

PIPELINE = 'bcbio'


@dataclass(frozen=True)
class Invocation:
    """Record of the call that produced an object, stored in ``uns['call']``."""
    function: str
    arguments: dict = field(default_factory=dict)

    def __str__(self):
        args = ', '.join(f"{key}={value!r}" for key, value in self.arguments.items())
        return f"{self.function}({args})"


# =============================================================================
# Argument checks
# =============================================================================

def _is_url(path):
    return str(path).startswith(('http://', 'https://', 'ftp://'))


def _check_string(value, name):
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{name} must be a string, got {type(value).__name__}")


def _check_strings(values, name):
    if values is None:
        return None
    if isinstance(values, str):
        values = [values]
    values = list(values)
    if not values or not all(isinstance(v, str) for v in values):
        raise ValidationError(f"{name} must be a non-empty list of strings")
    return values


def _drop_none(metadata):
    return {key: value for key, value in metadata.items() if value is not None}


# =============================================================================
# Entry point
# =============================================================================

def bcbio_single_cell(
    upload_dir,
    sample_metadata_file=None,
    organism=None,
    ensembl_release=None,
    genome_build=None,
    gff_file=None,
    transgene_names=None,
    interesting_groups=('sample_name',),
    workers=1,
    backend=None,
):
    """
    Import a bcbio-nextgen single-cell RNA-seq run.

    Parameters
    ----------
    upload_dir : str
        bcbio upload directory
    sample_metadata_file : str, optional
        Sample sheet (CSV, TSV or Excel). Naming fewer samples than were
        run selects that subset.
    organism : str, optional
        Binomial organism name, used with ``ensembl_release``
    ensembl_release : int, optional
        Ensembl release for BioMart annotation
    genome_build : str, optional
        Genome build (e.g. ``'GRCh38'``)
    gff_file : str, optional
        GTF/GFF file or URL; defaults to the GTF in the run summary
    transgene_names : list of str, optional
        Features to annotate as transgenes
    interesting_groups : list of str
        Sample metadata columns of interest
    workers : int
        Concurrent per-sample imports (default: serial)
    backend : SerialBackend or PoolBackend, optional
        Overrides ``workers``

    Returns
    -------
    AnnData
        Raw counts (cells x features) with cell, feature and run metadata
    """
    if upload_dir is None or not os.path.isdir(upload_dir):
        raise NotFoundError(f"Upload directory not found: {upload_dir}")
    for value, name in (
        (sample_metadata_file, 'sample_metadata_file'),
        (organism, 'organism'),
        (genome_build, 'genome_build'),
        (gff_file, 'gff_file'),
    ):
        _check_string(value, name)
    if ensembl_release is not None and (
        isinstance(ensembl_release, bool) or not isinstance(ensembl_release, int)
    ):
        raise ValidationError(f"ensembl_release must be an integer, got {ensembl_release!r}")
    if workers is not None and (
        isinstance(workers, bool) or not isinstance(workers, int) or workers < 1
    ):
        raise ValidationError(f"workers must be a positive integer, got {workers!r}")
    if gff_file is not None and not _is_url(gff_file) and not os.path.isfile(gff_file):
        raise NotFoundError(f"GTF/GFF file not found: {gff_file}")
    transgene_names = _check_strings(transgene_names, 'transgene_names')
    interesting_groups = _check_strings(interesting_groups, 'interesting_groups') or ['sample_name']

    call = Invocation(
        function='bcbio_single_cell',
        arguments={
            'upload_dir': upload_dir,
            'sample_metadata_file': sample_metadata_file,
            'organism': organism,
            'ensembl_release': ensembl_release,
            'genome_build': genome_build,
            'gff_file': gff_file,
            'transgene_names': transgene_names,
            'interesting_groups': interesting_groups,
            'workers': workers,
        },
    )
    return assemble(
        upload_dir=upload_dir,
        sample_metadata_file=sample_metadata_file,
        organism=organism,
        ensembl_release=ensembl_release,
        genome_build=genome_build,
        gff_file=gff_file,
        transgene_names=transgene_names,
        interesting_groups=interesting_groups,
        backend=backend or get_backend(workers),
        call=call,
    )


def assemble(
    upload_dir,
    sample_metadata_file,
    organism,
    ensembl_release,
    genome_build,
    gff_file,
    transgene_names,
    interesting_groups,
    backend,
    call,
):
    """Run every import step and return the assembled AnnData."""
    log_header(logger, "bcbioSingleCell")
    logger.info("Importing bcbio-nextgen single-cell RNA-seq run")

    # Run info ----------------------------------------------------------------
    upload_dir = resolve_upload_dir(upload_dir)
    project = project_dir(upload_dir)
    dirs = sample_dirs(upload_dir)
    lanes = detect_lanes(dirs)
    run_yaml = import_yaml(os.path.join(project, 'project-summary.yaml'))
    data_versions = import_data_versions(os.path.join(project, 'data_versions.csv'))
    program_versions = import_program_versions(os.path.join(project, 'programs.txt'))
    bcbio_log = import_log(os.path.join(project, 'bcbio-nextgen.log'))
    commands_log = import_log(os.path.join(project, 'bcbio-nextgen-commands.log'))
    log_info = parse_commands_log(commands_log)

    # Sample metadata ---------------------------------------------------------
    log_header(logger, "Sample metadata")
    all_samples = True
    sample_data = None
    if sample_metadata_file is not None:
        sample_data = import_sample_data(sample_metadata_file, dirs, lanes)
        dirs, all_samples = select_samples(sample_data, dirs)

    # Counts ------------------------------------------------------------------
    log_header(logger, "Counts")
    adata = import_counts(dirs, backend)

    # Feature metadata --------------------------------------------------------
    log_header(logger, "Feature metadata")
    yaml_gtf_file = None
    if gff_file is None and not (organism and ensembl_release is not None):
        yaml_gtf_file = gtf_file_from_yaml(run_yaml)
    annotation, annotation_info = resolve_row_annotation(
        adata.var_names,
        level=log_info.level,
        organism=organism,
        ensembl_release=ensembl_release,
        genome_build=genome_build,
        gff_file=gff_file,
        yaml_gtf_file=yaml_gtf_file,
        transgene_names=transgene_names,
    )
    adata.var = annotation

    # Column data -------------------------------------------------------------
    log_header(logger, "Column data")
    if sample_data is None:
        if log_info.multiplexed:
            logger.warning(
                f"sample_metadata_file is recommended for multiplexed samples "
                f"(e.g. {log_info.umi_type})."
            )
            sample_data = minimal_sample_data(list(dirs))
        else:
            sample_data = sample_data_from_yaml(run_yaml)
    check_samples_subset(sample_data, dirs)
    adata.obs = make_col_data(adata.obs_names, sample_data)

    # Metadata ----------------------------------------------------------------
    log_header(logger, "Metadata")
    cellular_barcodes = import_reads(dirs, backend)
    interesting_groups = [snake_case(group) for group in interesting_groups]
    missing_groups = [g for g in interesting_groups if g not in sample_data.columns]
    if missing_groups:
        raise ValidationError(
            f"Interesting groups not found in sample metadata: {missing_groups}. "
            f"Available: {list(sample_data.columns)}"
        )
    release = annotation_info['ensembl_release']
    adata.uns.update(_drop_none({
        'all_samples': all_samples,
        'annotation_source': annotation_info['source'],
        'bcbio_commands_log': commands_log,
        'bcbio_log': bcbio_log,
        'call': str(call),
        'cellular_barcode_cutoff': log_info.cutoff,
        'cellular_barcodes': {
            sample_id: reads.rename_axis('barcode').reset_index()
            for sample_id, reads in cellular_barcodes.items()
        },
        'data_versions': data_versions,
        'date': datetime.now().date().isoformat(),
        'ensembl_release': int(release) if release is not None else None,
        'genome_build': annotation_info['genome_build'] or genome_build_from_yaml(run_yaml),
        'gff_file': annotation_info['gff_file'],
        'interesting_groups': interesting_groups,
        'lanes': lanes,
        'level': log_info.level,
        'organism': organism,
        'pipeline': PIPELINE,
        'program_versions': program_versions,
        'project_dir': project,
        'run_date': run_date(project).isoformat(),
        'sample_dirs': dict(dirs),
        'sample_metadata_file': sample_metadata_file,
        'umi_type': log_info.umi_type,
        'upload_dir': upload_dir,
        'version': __version__,
        'yaml': yaml.safe_dump(run_yaml, sort_keys=False),
    }))

    # Metrics -----------------------------------------------------------------
    log_header(logger, "Metrics")
    # Always prefilter, removing very low quality cells.
    adata = calculate_metrics(adata, prefilter=True)
    adata = add_n_read(adata, n_read(cellular_barcodes))

    logger.info(f"Imported {adata.n_obs} cells x {adata.n_vars} features")
    logger.info("bcbio single-cell RNA-seq run imported successfully.")
    return adata
