"""Small naming helpers shared across the import steps."""

import re


def make_name(name):
    """
    Make a string safe to use as a sample or cell identifier.

    Runs of characters outside ``[A-Za-z0-9]`` collapse to one underscore.

    >>> make_name('multiplexed-AAAACCCC')
    'multiplexed_AAAACCCC'
    """
    return re.sub(r'[^A-Za-z0-9]+', '_', str(name)).strip('_')


def snake_case(name):
    """
    Convert a column name to snake_case.

    >>> snake_case('sampleName')
    'sample_name'
    >>> snake_case('Interesting Group')
    'interesting_group'
    """
    name = re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', str(name))
    name = re.sub(r'[^A-Za-z0-9]+', '_', name)
    return name.strip('_').lower()


def snake_case_columns(df):
    """Return a copy of ``df`` with snake_cased column names."""
    df = df.copy()
    df.columns = [snake_case(col) for col in df.columns]
    return df


def log_header(logger, title, width=60):
    """Log a section header framed by ``=`` rules."""
    logger.info("=" * width)
    logger.info(title)
    logger.info("=" * width)

