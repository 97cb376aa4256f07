"""
Pytest configuration and shared fixtures.

Builds small bcbio-nextgen upload directories on disk:

    upload/
    ├── 2018-01-01_indrops/   project-summary.yaml, logs, versions
    └── <sample>/             <sample>.mtx(.rownames/.colnames), <sample>-barcodes.tsv
"""

import os

# numba's TBB threading layer deadlocks at interpreter exit once the process
# pool backend has forked; pick a fork-safe layer for the test session.
os.environ.setdefault('NUMBA_THREADING_LAYER', 'workqueue')

import numpy as np
import pandas as pd
import pytest
import yaml
from scipy import io as spio
from scipy import sparse

GENES = [
    'ENSG00000000001',
    'ENSG00000000002',
    'ENSG00000000003',
    'ENSG00000000004',
    'ENSG00000000005',
]

PROJECT_DIR = '2018-01-01_indrops'

MULTIPLEXED_COMMANDS_LOG = [
    "[2018-01-01T10:00Z] umis fastqtransform --separate_cb "
    "/bcbio/galaxy/umis/harvard-indrop-v3-transform.json sample_R1.fq.gz sample_R2.fq.gz",
    "[2018-01-01T10:10Z] umis cb_filter --cb_cutoff 1000 --bc1 barcodes.txt",
    "[2018-01-01T10:20Z] umis tagcount --genemap ref-transcripts-tx2gene.tsv --cb_cutoff 1000",
]

GTF_LINES = [
    ('1', 'gene', 100, 500, '+', 'gene_id "ENSG00000000001"; gene_name "GENE1"; gene_biotype "protein_coding";'),
    ('1', 'transcript', 100, 500, '+', 'gene_id "ENSG00000000001"; transcript_id "ENST00000000001"; gene_name "GENE1"; transcript_name "GENE1-201"; transcript_biotype "protein_coding";'),
    ('1', 'exon', 100, 200, '+', 'gene_id "ENSG00000000001"; transcript_id "ENST00000000001"; gene_name "GENE1"; transcript_name "GENE1-201";'),
    ('1', 'exon', 300, 500, '+', 'gene_id "ENSG00000000001"; transcript_id "ENST00000000001"; gene_name "GENE1"; transcript_name "GENE1-201";'),
    ('2', 'gene', 1000, 2000, '-', 'gene_id "ENSG00000000002"; gene_name "GENE2"; gene_biotype "lincRNA";'),
    ('2', 'transcript', 1000, 2000, '-', 'gene_id "ENSG00000000002"; transcript_id "ENST00000000002"; gene_name "GENE2"; transcript_name "GENE2-201"; transcript_biotype "lincRNA";'),
    ('2', 'exon', 1000, 2000, '-', 'gene_id "ENSG00000000002"; transcript_id "ENST00000000002"; gene_name "GENE2"; transcript_name "GENE2-201";'),
    ('MT', 'gene', 10, 90, '+', 'gene_id "ENSG00000000003"; gene_name "MT-CO1"; gene_biotype "protein_coding";'),
    ('MT', 'transcript', 10, 90, '+', 'gene_id "ENSG00000000003"; transcript_id "ENST00000000003"; gene_name "MT-CO1"; transcript_name "MT-CO1-201"; transcript_biotype "protein_coding";'),
    ('MT', 'exon', 10, 90, '+', 'gene_id "ENSG00000000003"; transcript_id "ENST00000000003"; gene_name "MT-CO1"; transcript_name "MT-CO1-201";'),
    ('X', 'gene', 5000, 6000, '+', 'gene_id "ENSG00000000004"; gene_name "GENE4"; gene_biotype "protein_coding";'),
    ('X', 'transcript', 5000, 6000, '+', 'gene_id "ENSG00000000004"; transcript_id "ENST00000000004"; gene_name "GENE4"; transcript_name "GENE4-201"; transcript_biotype "protein_coding";'),
    ('X', 'exon', 5000, 6000, '+', 'gene_id "ENSG00000000004"; transcript_id "ENST00000000004"; gene_name "GENE4"; transcript_name "GENE4-201";'),
]


def write_gtf(path, lines=GTF_LINES):
    with open(path, 'w') as f:
        f.write('#!genome-build GRCh38\n')
        for seqid, featuretype, start, end, strand, attrs in lines:
            f.write(f"{seqid}\tensembl\t{featuretype}\t{start}\t{end}\t.\t{strand}\t.\t{attrs}\n")
    return str(path)


def write_sample(upload_dir, dir_name, barcodes, genes=GENES, counts=None, seed=0):
    """
    Write one sample directory.

    ``counts`` is a features x cells array; random positive counts are used
    when it is not given.
    """
    sample_dir = os.path.join(upload_dir, dir_name)
    os.makedirs(sample_dir, exist_ok=True)
    if counts is None:
        rng = np.random.RandomState(seed)
        counts = rng.poisson(3, size=(len(genes), len(barcodes))) + 1
    counts = np.asarray(counts, dtype=np.int64)
    stem = os.path.join(sample_dir, dir_name)
    spio.mmwrite(f"{stem}.mtx", sparse.coo_matrix(counts), field='integer')
    with open(f"{stem}.mtx.rownames", 'w') as f:
        f.write('\n'.join(genes) + '\n')
    with open(f"{stem}.mtx.colnames", 'w') as f:
        f.write('\n'.join(barcodes) + '\n')
    reads = pd.DataFrame({
        'barcode': list(barcodes) + ['TTTTTTTT-TTTTTTTT'],
        'n_read': [int(c) * 10 for c in counts.sum(axis=0)] + [5],
    })
    reads.to_csv(f"{stem}-barcodes.tsv", sep='\t', header=False, index=False)
    return sample_dir


def write_project(upload_dir, descriptions, commands_log=None, bcbio_log=None,
                  gtf_file='/nonexistent/ref-transcripts.gtf', metadata=None):
    """Write the project directory with run summary, versions and logs."""
    project = os.path.join(upload_dir, PROJECT_DIR)
    os.makedirs(project, exist_ok=True)
    summary = {
        'date': '2018-01-01 10:00:00',
        'upload': upload_dir,
        'samples': [
            {
                'description': description,
                'genome_build': 'GRCh38',
                'metadata': (metadata or {}).get(description, {}),
                'genome_resources': {'rnaseq': {'transcripts': gtf_file}},
            }
            for description in descriptions
        ],
    }
    with open(os.path.join(project, 'project-summary.yaml'), 'w') as f:
        yaml.dump(summary, f, default_flow_style=False, sort_keys=False)
    with open(os.path.join(project, 'data_versions.csv'), 'w') as f:
        f.write("genome,resource,version\nGRCh38,transcripts,2018-01-01\n")
    with open(os.path.join(project, 'programs.txt'), 'w') as f:
        f.write("bcbio-nextgen,1.0.8\numis,1.0.0\n")
    with open(os.path.join(project, 'bcbio-nextgen.log'), 'w') as f:
        f.write('\n'.join(bcbio_log or []))
    with open(os.path.join(project, 'bcbio-nextgen-commands.log'), 'w') as f:
        f.write('\n'.join(commands_log or []))
    return project


MULTIPLEXED_BARCODES = {
    'multiplexed-AAAACCCC': ['AAAAAAAA-CCCCCCCC', 'AAAAAAAA-GGGGGGGG', 'CCCCCCCC-GGGGGGGG'],
    'multiplexed-AACCAACC': ['GGGGGGGG-AAAAAAAA', 'TTTTAAAA-CCCCGGGG'],
}


@pytest.fixture
def indrops_dir(tmp_path):
    """Multiplexed inDrops run with two samples."""
    upload_dir = str(tmp_path / 'upload')
    for i, (dir_name, barcodes) in enumerate(MULTIPLEXED_BARCODES.items()):
        write_sample(upload_dir, dir_name, barcodes, seed=i)
    write_project(upload_dir, list(MULTIPLEXED_BARCODES), commands_log=MULTIPLEXED_COMMANDS_LOG)
    return upload_dir


@pytest.fixture
def single_sample_dir(tmp_path):
    """One non-multiplexed sample with empty logs and no reachable GTF."""
    upload_dir = str(tmp_path / 'upload')
    write_sample(upload_dir, 'run1', ['AAAAAAAA', 'CCCCCCCC', 'GGGGGGGG', 'TTTTTTTT'])
    write_project(upload_dir, ['run1'], metadata={'run1': {'treatment': 'control'}})
    return upload_dir


@pytest.fixture
def metadata_file(tmp_path):
    """Sample sheet for ``indrops_dir`` with forward index sequences."""
    path = tmp_path / 'metadata.csv'
    pd.DataFrame({
        'description': ['multiplexed', 'multiplexed'],
        'index': ['1', '2'],
        'sequence': ['GGGGTTTT', 'GGTTGGTT'],
        'sampleName': ['sample1', 'sample2'],
        'treatment': ['A', 'B'],
    }).to_csv(path, index=False)
    return str(path)


@pytest.fixture
def gtf_file(tmp_path):
    return write_gtf(tmp_path / 'genes.gtf')
