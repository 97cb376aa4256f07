"""
bcbioSingleCell
===============

Import bcbio-nextgen single-cell RNA-seq runs into AnnData objects.

Functions:
- bcbio_single_cell: import an upload directory
- update_object: upgrade an object written by an earlier release
"""

__version__ = '0.5.0'

from bcbio_single_cell.importer import Invocation, bcbio_single_cell
from bcbio_single_cell.update import update_object

__all__ = ['bcbio_single_cell', 'update_object', 'Invocation']
