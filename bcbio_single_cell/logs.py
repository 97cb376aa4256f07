"""
logs.py
=======

Extract run parameters from ``bcbio-nextgen-commands.log``.

Parsing is driven by a small table of rules, one per field. Each rule holds
a regular expression and a converter applied to its first capture group.

Example commands log lines::

    umis fastqtransform ... /bcbio/galaxy/umis/harvard-indrop-v3-transform.json ...
    umis cb_filter ... --cb_cutoff 1000 ...
    umis tagcount ... --genemap ref-transcripts-tx2gene.tsv ...
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

MULTIPLEXED_PLATFORMS = ('dropseq', 'indrop')
LEVELS = ('genes', 'transcripts')


@dataclass(frozen=True)
class LogRule:
    """Labeled extraction rule: first match of ``pattern`` fills ``field``."""
    field: str
    pattern: str
    convert: Callable = str

    def extract(self, lines):
        regex = re.compile(self.pattern)
        for line in lines:
            match = regex.search(line)
            if match:
                return self.convert(match.group(1) if match.groups() else match.group(0))
        return None


@dataclass(frozen=True)
class CommandsLogInfo:
    """Parameters recovered from the commands log."""
    cutoff: Optional[int] = None
    level: str = 'genes'
    umi_type: Optional[str] = None

    @property
    def multiplexed(self):
        return is_multiplexed(self.umi_type)


def _level(match):
    # Transcript-level runs never pass a gene map to `umis tagcount`.
    return 'genes'


COMMANDS_LOG_RULES = (
    LogRule('cutoff', r'--cb_cutoff[ =](\d+)', int),
    LogRule('umi_type', r'fastqtransform.*/([A-Za-z0-9._\-]+?)(?:-transform)?\.json'),
    LogRule('level', r'--genemap', _level),
)

COMMANDS_LOG_FALLBACKS = {
    'level': 'transcripts',
}


def parse_log(lines, rules):
    """
    Apply extraction rules to log lines.

    Parameters
    ----------
    lines : list of str
        Log file content
    rules : sequence of LogRule
        Rules to apply

    Returns
    -------
    dict
        Field name -> extracted value, or None when no line matched
    """
    return {rule.field: rule.extract(lines) for rule in rules}


def parse_commands_log(lines):
    """
    Recover barcode cutoff, processing level, and UMI type.

    An empty log returns the defaults of :class:`CommandsLogInfo` with a
    warning. Fields that cannot be found in a non-empty log are reported
    individually.
    """
    if not lines:
        logger.warning(
            "Commands log is empty. Using defaults: no barcode cutoff, "
            "gene-level counts, unknown UMI type."
        )
        return CommandsLogInfo()

    values = parse_log(lines, COMMANDS_LOG_RULES)
    for field, fallback in COMMANDS_LOG_FALLBACKS.items():
        if values.get(field) is None:
            values[field] = fallback

    if values['cutoff'] is None:
        logger.warning("Cellular barcode cutoff not found in commands log.")
    if values['umi_type'] is None:
        logger.warning("UMI type not found in commands log.")

    info = CommandsLogInfo(**values)
    logger.info(
        f"Barcode cutoff: {info.cutoff}, level: {info.level}, UMI type: {info.umi_type}"
    )
    return info


def is_multiplexed(umi_type):
    """True for platforms that pool several samples in one run."""
    if not umi_type:
        return False
    return any(platform in umi_type for platform in MULTIPLEXED_PLATFORMS)
