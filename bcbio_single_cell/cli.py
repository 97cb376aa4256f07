#!/usr/bin/env python3
"""
bcbioSingleCell CLI
===================

Import a bcbio-nextgen single-cell RNA-seq run and save it as an .h5ad file.

Two commands:
1. create-config: Write a YAML template of import options
2. import: Import an upload directory into an AnnData .h5ad file
"""

import logging
import sys

import click

from bcbio_single_cell import __version__
from bcbio_single_cell.config import DEFAULT_IMPORT_PARAMS, load_config, merge_params, write_config
from bcbio_single_cell.errors import BcbioSingleCellError
from bcbio_single_cell.importer import bcbio_single_cell


def setup_logging(verbose=False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )


@click.group()
@click.version_option(version=__version__, prog_name='bcbioSingleCell')
def main():
    """
    bcbioSingleCell: import bcbio-nextgen single-cell RNA-seq runs

    \b
    Typical workflow:
    1. bcbioSingleCell create-config -o config.yaml --upload-dir ./upload
    2. bcbioSingleCell import --config config.yaml -o run.h5ad
    """
    pass


@main.command('create-config')
@click.option('--output', '-o', 'output_yaml', required=True, type=click.Path(),
              help='Path for the YAML config file')
@click.option('--upload-dir', type=click.Path(), default=None,
              help='bcbio upload directory')
@click.option('--sample-metadata-file', type=click.Path(), default=None,
              help='Sample metadata sheet (CSV, TSV or Excel)')
@click.option('--organism', default=None, help='Binomial organism name (e.g. "Homo sapiens")')
@click.option('--ensembl-release', type=int, default=None, help='Ensembl release')
@click.option('--genome-build', default=None, help='Genome build (e.g. GRCh38)')
@click.option('--gff-file', default=None, help='GTF/GFF file or URL')
def create_config(output_yaml, **options):
    """Write a YAML template of import options."""
    params = merge_params(DEFAULT_IMPORT_PARAMS, options)
    path = write_config(output_yaml, params)
    click.echo(f"Config written to: {path}")
    click.echo("\nTo import the run:")
    click.echo(f"  bcbioSingleCell import --config {path} -o run.h5ad")


@main.command('import')
@click.argument('upload_dir', required=False, type=click.Path())
@click.option('--output', '-o', 'output_h5ad', required=True, type=click.Path(),
              help='Path for the output .h5ad file')
@click.option('--config', '-c', 'config_file', type=click.Path(exists=True), default=None,
              help='YAML config of import options; command-line options take precedence')
@click.option('--sample-metadata-file', '-m', type=click.Path(), default=None,
              help='Sample metadata sheet (CSV, TSV or Excel)')
@click.option('--organism', default=None, help='Binomial organism name (e.g. "Homo sapiens")')
@click.option('--ensembl-release', type=int, default=None, help='Ensembl release')
@click.option('--genome-build', default=None, help='Genome build (e.g. GRCh38)')
@click.option('--gff-file', default=None, help='GTF/GFF file or URL')
@click.option('--transgene', 'transgene_names', multiple=True,
              help='Feature to annotate as a transgene (repeatable)')
@click.option('--interesting-group', 'interesting_groups', multiple=True,
              help='Sample metadata column of interest (repeatable)')
@click.option('--workers', '-w', type=int, default=None,
              help='Samples to import concurrently (default: 1)')
@click.option('--verbose', '-v', is_flag=True, default=False, help='Print debug output')
def import_run(upload_dir, output_h5ad, config_file, verbose, **options):
    """
    Import a bcbio single-cell RNA-seq run.

    \b
    Usage examples:

      # Basic usage, annotation from the bcbio GTF
      bcbioSingleCell import upload -o run.h5ad

      # Annotation from Ensembl, subset of samples
      bcbioSingleCell import upload -o run.h5ad -m metadata.csv \\
        --organism "Homo sapiens" --ensembl-release 104
    """
    setup_logging(verbose)

    options = {key: (list(value) or None) if isinstance(value, tuple) else value
               for key, value in options.items()}
    options['upload_dir'] = upload_dir
    try:
        params = load_config(config_file) if config_file else dict(DEFAULT_IMPORT_PARAMS)
        params = merge_params(params, options)
        if params['upload_dir'] is None:
            raise click.UsageError("UPLOAD_DIR is required (argument or config file)")
        adata = bcbio_single_cell(**params)
    except BcbioSingleCellError as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(1)

    adata.write_h5ad(output_h5ad)
    click.echo(f"\nSaved {adata.n_obs} cells x {adata.n_vars} features to: {output_h5ad}")


if __name__ == '__main__':
    main()
