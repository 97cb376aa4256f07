"""
annotation.py
=============

Resolve feature (gene or transcript) annotation for the count matrix rows.

Annotation priority:
1. Ensembl BioMart, when both an organism and an Ensembl release are given.
2. A GTF/GFF file, given by the caller or referenced by the run summary.
3. Empty placeholder ranges, one per count matrix feature.

The resolved table is indexed by feature ID and always aligned to the count
matrix features before it is slotted into ``AnnData.var``.
"""

import io
import logging
import os
import re
import tempfile
import time

import gffutils
import numpy as np
import pandas as pd
import requests

from bcbio_single_cell.errors import NotFoundError, ValidationError
from bcbio_single_cell.logs import LEVELS

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

BIOMART_TIMEOUT = 600
DOWNLOAD_TIMEOUT = 300
GRCH37_HOST = "https://grch37.ensembl.org"
ARCHIVE_HOST = "https://e{release}.ensembl.org"

GENE_COLUMNS = ['chromosome', 'start', 'end', 'strand', 'gene_id', 'gene_name', 'gene_biotype']
TRANSCRIPT_COLUMNS = GENE_COLUMNS + ['transcript_id', 'transcript_name', 'transcript_biotype']

BIOMART_ATTRIBUTES = {
    'genes': [
        ('ensembl_gene_id', 'gene_id'),
        ('external_gene_name', 'gene_name'),
        ('gene_biotype', 'gene_biotype'),
        ('chromosome_name', 'chromosome'),
        ('start_position', 'start'),
        ('end_position', 'end'),
        ('strand', 'strand'),
    ],
    'transcripts': [
        ('ensembl_transcript_id', 'transcript_id'),
        ('external_transcript_name', 'transcript_name'),
        ('transcript_biotype', 'transcript_biotype'),
        ('ensembl_gene_id', 'gene_id'),
        ('external_gene_name', 'gene_name'),
        ('gene_biotype', 'gene_biotype'),
        ('chromosome_name', 'chromosome'),
        ('transcript_start', 'start'),
        ('transcript_end', 'end'),
        ('strand', 'strand'),
    ],
}

BIOMART_QUERY = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE Query>
<Query virtualSchemaName="default" formatter="TSV" header="0" uniqueRows="1" count="" datasetConfigVersion="0.6">
    <Dataset name="{dataset}" interface="default">
{attributes}
    </Dataset>
</Query>"""


def _id_column(level):
    return 'gene_id' if level == 'genes' else 'transcript_id'


def _columns(level):
    return GENE_COLUMNS if level == 'genes' else TRANSCRIPT_COLUMNS


def _check_level(level):
    if level not in LEVELS:
        raise ValidationError(f"level must be one of {LEVELS}, got {level!r}")


def _finalize(df, level):
    """Index by feature ID, order columns, and coerce dtypes."""
    id_col = _id_column(level)
    df = df.dropna(subset=[id_col]).drop_duplicates(subset=[id_col])
    df = df.set_index(df[id_col].astype(str))
    df.index.name = None
    for col in _columns(level):
        if col not in df.columns:
            df[col] = np.nan
    df = df[_columns(level)].copy()
    for col in ('start', 'end'):
        df[col] = pd.to_numeric(df[col], errors='coerce').astype('Int64')
    return df


# =============================================================================
# Ensembl BioMart
# =============================================================================

def ensembl_dataset(organism):
    """
    BioMart dataset name for an organism.

    >>> ensembl_dataset('Homo sapiens')
    'hsapiens_gene_ensembl'
    """
    words = re.split(r'[\s_]+', organism.strip().lower())
    if len(words) < 2:
        raise ValidationError(f"Organism must be a binomial name, got {organism!r}")
    return f"{words[0][0]}{words[-1]}_gene_ensembl"


def ensembl_host(release, genome_build=None):
    """Archive host serving a given Ensembl release."""
    if genome_build and re.match(r'^(GRCh37|hg19)', genome_build):
        return GRCH37_HOST
    return ARCHIVE_HOST.format(release=int(release))


def query_biomart(host, xml_query, description, timeout=BIOMART_TIMEOUT):
    """Execute a BioMart query and return the TSV response text."""
    logger.info(f"Querying BioMart: {description}...")
    start = time.time()
    response = requests.get(
        f"{host}/biomart/martservice",
        params={'query': xml_query},
        timeout=timeout,
    )
    response.raise_for_status()
    if response.text.startswith('Query ERROR'):
        raise ValidationError(f"BioMart error: {response.text[:500]}")
    elapsed = time.time() - start
    logger.info(f"  Got {response.text.count(chr(10)):,} lines in {elapsed:.1f}s")
    return response.text


def genome_build_from_biomart(host, dataset, timeout=BIOMART_TIMEOUT):
    """Look up the assembly of a BioMart dataset, without patch suffix."""
    response = requests.get(
        f"{host}/biomart/martservice",
        params={'type': 'datasets', 'mart': 'ENSEMBL_MART_ENSEMBL'},
        timeout=timeout,
    )
    response.raise_for_status()
    for line in response.text.splitlines():
        fields = line.split('\t')
        if len(fields) > 4 and fields[1] == dataset:
            return re.sub(r'\.p\d+$', '', fields[4])
    return None


def annotation_from_ensembl(organism, release, level='genes', genome_build=None):
    """
    Fetch feature ranges from Ensembl BioMart.

    Parameters
    ----------
    organism : str
        Binomial organism name (e.g. ``'Homo sapiens'``)
    release : int
        Ensembl release
    level : str
        ``'genes'`` or ``'transcripts'``
    genome_build : str, optional
        Genome build; looked up from BioMart when not given

    Returns
    -------
    tuple
        (annotation DataFrame, genome build)
    """
    _check_level(level)
    dataset = ensembl_dataset(organism)
    host = ensembl_host(release, genome_build)
    attributes = BIOMART_ATTRIBUTES[level]
    xml_query = BIOMART_QUERY.format(
        dataset=dataset,
        attributes='\n'.join(f'        <Attribute name="{name}"/>' for name, _ in attributes),
    )
    text = query_biomart(host, xml_query, f"{organism} {level} (Ensembl {release})")
    df = pd.read_csv(
        io.StringIO(text),
        sep='\t',
        header=None,
        names=[col for _, col in attributes],
        dtype=str,
    )
    df['strand'] = df['strand'].map({'1': '+', '-1': '-'})
    if genome_build is None:
        genome_build = genome_build_from_biomart(host, dataset)
    annotation = _finalize(df, level)
    logger.info(f"  {len(annotation)} {level} annotated ({genome_build}, Ensembl {release})")
    return annotation, genome_build


# =============================================================================
# GTF/GFF
# =============================================================================

def _is_url(path):
    return bool(re.match(r'^(https?|ftp)://', str(path)))


def download_file(url, timeout=DOWNLOAD_TIMEOUT):
    """Download a remote annotation file to a temporary path."""
    logger.info(f"Downloading {url}...")
    name = os.path.basename(url.split('?')[0])
    suffix = name[name.find('.'):] if '.' in name else '.gtf'
    response = requests.get(url, timeout=timeout, stream=True)
    response.raise_for_status()
    fd, path = tempfile.mkstemp(suffix=suffix)
    with os.fdopen(fd, 'wb') as f:
        for chunk in response.iter_content(chunk_size=8192):
            f.write(chunk)
    return path


def _feature_records(path):
    """Flatten every GTF/GFF feature into a plain record."""
    records = []
    for feature in gffutils.DataIterator(path):
        attrs = {key: values[0] for key, values in feature.attributes.items() if values}
        parent = attrs.get('Parent')
        records.append({
            'chromosome': feature.seqid,
            'featuretype': feature.featuretype,
            'start': feature.start,
            'end': feature.end,
            'strand': feature.strand,
            'gene_id': attrs.get('gene_id'),
            'transcript_id': attrs.get('transcript_id'),
            'parent': re.sub(r'^gene:', '', parent) if parent else None,
            'name': attrs.get('Name'),
            'gene_name': attrs.get('gene_name'),
            'transcript_name': attrs.get('transcript_name'),
            'gene_biotype': attrs.get('gene_biotype', attrs.get('gene_type')),
            'transcript_biotype': attrs.get('transcript_biotype', attrs.get('transcript_type')),
            'biotype': attrs.get('biotype'),
        })
    return pd.DataFrame.from_records(records)


def _collapse(df, key, first_cols):
    agg = {'chromosome': 'first', 'start': 'min', 'end': 'max', 'strand': 'first'}
    agg.update({col: 'first' for col in first_cols})
    out = df.groupby(key, sort=False).agg(agg)
    out[key] = out.index
    return out.reset_index(drop=True)


def annotation_from_gff(gff_file, level='genes'):
    """
    Parse feature ranges from a GTF or GFF3 file.

    Gene and transcript coordinates span all lines carrying the same
    ``gene_id`` / ``transcript_id``, so exon-only GTFs such as bcbio's
    ``ref-transcripts.gtf`` are handled too.
    """
    _check_level(level)
    if _is_url(gff_file):
        path = download_file(gff_file)
        try:
            return _parse_gff(path, level, gff_file)
        finally:
            os.remove(path)
    if not os.path.isfile(gff_file):
        raise NotFoundError(f"GTF/GFF file not found: {gff_file}")
    return _parse_gff(gff_file, level, gff_file)


def _parse_gff(path, level, label):
    logger.info(f"Parsing {level} from {os.path.basename(str(label))}")
    df = _feature_records(path)
    if df.empty:
        raise ValidationError(f"No features found in {label}")

    # GFF3 gene lines carry the name and biotype as Name/biotype.
    is_gene_line = df['transcript_id'].isna()
    df.loc[is_gene_line, 'gene_name'] = df.loc[is_gene_line, 'gene_name'].fillna(df.loc[is_gene_line, 'name'])
    df.loc[is_gene_line, 'gene_biotype'] = df.loc[is_gene_line, 'gene_biotype'].fillna(df.loc[is_gene_line, 'biotype'])

    genes = df[df['gene_id'].notna()]
    genes = _collapse(genes, 'gene_id', ['gene_name', 'gene_biotype']) if not genes.empty else genes
    if level == 'genes':
        if genes.empty:
            raise ValidationError(f"No gene_id attributes found in {label}")
        annotation = _finalize(genes, level)
    else:
        tx = df[df['transcript_id'].notna()].copy()
        if tx.empty:
            raise ValidationError(f"No transcript_id attributes found in {label}")
        tx['gene_id'] = tx['gene_id'].fillna(tx['parent'])
        is_tx_line = ~tx['featuretype'].isin(['exon', 'CDS', 'five_prime_UTR', 'three_prime_UTR'])
        tx.loc[is_tx_line, 'transcript_name'] = tx.loc[is_tx_line, 'transcript_name'].fillna(tx.loc[is_tx_line, 'name'])
        tx.loc[is_tx_line, 'transcript_biotype'] = tx.loc[is_tx_line, 'transcript_biotype'].fillna(tx.loc[is_tx_line, 'biotype'])
        tx = _collapse(tx, 'transcript_id', ['gene_id', 'gene_name', 'gene_biotype', 'transcript_name', 'transcript_biotype'])
        if not genes.empty:
            lookup = genes.set_index('gene_id')
            tx['gene_name'] = tx['gene_name'].fillna(tx['gene_id'].map(lookup['gene_name']))
            tx['gene_biotype'] = tx['gene_biotype'].fillna(tx['gene_id'].map(lookup['gene_biotype']))
        annotation = _finalize(tx, level)

    logger.info(f"  {len(annotation)} {level} parsed")
    return annotation


# =============================================================================
# Placeholders and alignment
# =============================================================================

def empty_annotation(feature_ids, level='genes', chromosome='unknown'):
    """Placeholder ranges with no coordinates, one per feature."""
    feature_ids = pd.Index([str(f) for f in feature_ids])
    df = pd.DataFrame(index=feature_ids, columns=_columns(level), dtype=object)
    df['chromosome'] = chromosome
    df[_id_column(level)] = feature_ids
    for col in ('start', 'end'):
        df[col] = pd.array([pd.NA] * len(df), dtype='Int64')
    return df


def align_annotation(annotation, feature_ids, level='genes', transgene_names=None):
    """
    Subset and order the annotation to the count matrix features.

    Features missing from the annotation get placeholder rows: chromosome
    ``'transgene'`` for declared transgenes, ``'unknown'`` otherwise.
    """
    feature_ids = pd.Index([str(f) for f in feature_ids])
    transgene_names = set(transgene_names or [])
    missing = feature_ids.difference(annotation.index, sort=False)
    if len(missing):
        transgenes = [f for f in missing if f in transgene_names]
        unknown = [f for f in missing if f not in transgene_names]
        if transgenes:
            logger.info(f"Slotting {len(transgenes)} transgenes: {', '.join(transgenes)}")
        if unknown:
            preview = ', '.join(unknown[:5])
            logger.warning(f"{len(unknown)} features are unannotated: {preview}")
        annotation = pd.concat([
            annotation,
            empty_annotation(transgenes, level, chromosome='transgene'),
            empty_annotation(unknown, level, chromosome='unknown'),
        ])
    aligned = annotation.loc[feature_ids].copy()
    for col in aligned.columns:
        if col not in ('start', 'end'):
            aligned[col] = aligned[col].astype('category')
    return aligned


def resolve_row_annotation(
    feature_ids,
    level='genes',
    organism=None,
    ensembl_release=None,
    genome_build=None,
    gff_file=None,
    yaml_gtf_file=None,
    transgene_names=None,
):
    """
    Resolve annotation for the count matrix features.

    Returns
    -------
    tuple
        (annotation aligned to ``feature_ids``, dict with ``source``,
        ``genome_build``, ``ensembl_release``, ``gff_file``)
    """
    info = {
        'source': None,
        'genome_build': genome_build,
        'ensembl_release': ensembl_release,
        'gff_file': gff_file,
    }
    if organism and ensembl_release is not None:
        logger.info("Annotating features from Ensembl BioMart")
        annotation, info['genome_build'] = annotation_from_ensembl(
            organism=organism,
            release=ensembl_release,
            level=level,
            genome_build=genome_build,
        )
        info['source'] = 'ensembl'
    else:
        if gff_file is None and yaml_gtf_file is not None:
            logger.info(f"Using GTF file from run summary: {yaml_gtf_file}")
            gff_file = yaml_gtf_file
        if gff_file is not None:
            if not _is_url(gff_file):
                gff_file = os.path.realpath(gff_file)
            annotation = annotation_from_gff(gff_file, level=level)
            info['source'] = 'gff'
            info['gff_file'] = gff_file
        else:
            logger.warning("No annotation available. Slotting empty ranges into var.")
            annotation = empty_annotation(feature_ids, level)
            info['source'] = 'empty'
    return align_annotation(annotation, feature_ids, level, transgene_names), info
