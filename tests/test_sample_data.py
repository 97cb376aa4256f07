"""
Tests for sample metadata import.
"""

import logging

import pandas as pd
import pytest

from bcbio_single_cell.errors import (
    ConventionError,
    DuplicateKeyError,
    NotFoundError,
    ValidationError,
)
from bcbio_single_cell.run_dir import sample_dirs
from bcbio_single_cell.sample_data import (
    check_sequence_orientation,
    import_sample_data,
    minimal_sample_data,
    read_sample_sheet,
    reverse_complement,
    select_samples,
)


def write_sheet(tmp_path, name='metadata.csv', **columns):
    path = tmp_path / name
    sep = '\t' if name.endswith(('.tsv', '.txt')) else ','
    pd.DataFrame(columns).to_csv(path, index=False, sep=sep)
    return str(path)


@pytest.fixture
def dirs(indrops_dir):
    return sample_dirs(indrops_dir)


class TestHelpers:

    @pytest.mark.parametrize("sequence,expected", [
        ('GGGGTTTT', 'AAAACCCC'),
        ('GGTTGGTT', 'AACCAACC'),
        ('ACGTN', 'NACGT'),
    ])
    def test_reverse_complement(self, sequence, expected):
        assert reverse_complement(sequence) == expected

    def test_read_sheet_snake_cases_columns(self, tmp_path):
        path = write_sheet(tmp_path, description=['a'], sampleName=['A'], **{'Cell Type': ['x']})
        assert list(read_sample_sheet(path).columns) == ['description', 'sample_name', 'cell_type']

    def test_read_sheet_tsv(self, tmp_path):
        path = write_sheet(tmp_path, 'metadata.tsv', description=['a', 'b'], treatment=['1', '2'])
        df = read_sample_sheet(path)
        assert list(df['treatment']) == ['1', '2']

    def test_read_sheet_missing(self, tmp_path):
        with pytest.raises(NotFoundError):
            read_sample_sheet(str(tmp_path / 'metadata.csv'))

    def test_orientation_check_rejects_directory_barcodes(self):
        with pytest.raises(ConventionError, match="reverse complement"):
            check_sequence_orientation(
                ['multiplexed_AAAACCCC', 'multiplexed_AACCAACC'],
                ['AACCAACC', 'AAAACCCC'],
            )

    def test_orientation_check_accepts_forward_sequences(self):
        check_sequence_orientation(
            ['multiplexed_AAAACCCC', 'multiplexed_AACCAACC'],
            ['GGGGTTTT', 'GGTTGGTT'],
        )

    def test_minimal_sample_data(self):
        df = minimal_sample_data(['s1', 's2'])
        assert list(df.index) == ['s1', 's2']
        assert list(df['sample_name']) == ['s1', 's2']


class TestImportSampleData:

    def test_multiplexed_sheet(self, metadata_file, dirs):
        df = import_sample_data(metadata_file, dirs)
        assert list(df.index) == ['multiplexed_AAAACCCC', 'multiplexed_AACCAACC']
        assert df.index.name == 'sample_id'
        assert list(df['sample_name']) == ['sample1', 'sample2']
        assert list(df['treatment']) == ['A', 'B']

    def test_lowercase_sequences_are_normalized(self, tmp_path, dirs):
        path = write_sheet(
            tmp_path,
            description=['multiplexed', 'multiplexed'],
            sequence=['ggggtttt', 'ggttggtt'],
            sample_name=['sample1', 'sample2'],
        )
        df = import_sample_data(path, dirs)
        assert list(df['sequence']) == ['GGGGTTTT', 'GGTTGGTT']

    def test_reverse_complemented_sheet(self, tmp_path, dirs):
        path = write_sheet(
            tmp_path,
            description=['multiplexed', 'multiplexed'],
            sequence=['AAAACCCC', 'AACCAACC'],
            sample_name=['sample1', 'sample2'],
        )
        with pytest.raises(ConventionError):
            import_sample_data(path, dirs)

    def test_sample_name_defaults_to_description(self, tmp_path):
        path = write_sheet(tmp_path, description=['run1'])
        df = import_sample_data(path, {'run1': str(tmp_path / 'run1')})
        assert df.loc['run1', 'sample_name'] == 'run1'

    def test_missing_description(self, tmp_path, dirs):
        path = write_sheet(tmp_path, sample_name=['a'])
        with pytest.raises(ValidationError, match="missing required columns"):
            import_sample_data(path, dirs)

    def test_duplicated_rows(self, tmp_path):
        path = write_sheet(tmp_path, description=['run1', 'run1'], sample_name=['a', 'a'])
        with pytest.raises(DuplicateKeyError, match="duplicated rows"):
            import_sample_data(path, {'run1': str(tmp_path)})

    def test_duplicate_sample_ids(self, tmp_path):
        path = write_sheet(tmp_path, description=['run-1', 'run.1'], sample_name=['a', 'b'])
        with pytest.raises(DuplicateKeyError, match="Duplicate sample IDs"):
            import_sample_data(path, {'run_1': str(tmp_path)})

    def test_duplicate_sample_names(self, tmp_path):
        path = write_sheet(tmp_path, description=['run1', 'run2'], sample_name=['a', 'a'])
        with pytest.raises(DuplicateKeyError, match="Duplicate sample names"):
            import_sample_data(path, {'run1': str(tmp_path), 'run2': str(tmp_path)})

    def test_sample_without_directory(self, tmp_path, dirs):
        path = write_sheet(
            tmp_path,
            description=['multiplexed', 'multiplexed'],
            sequence=['GGGGTTTT', 'CCCCCCCC'],
            sample_name=['sample1', 'sample3'],
        )
        with pytest.raises(ValidationError, match="no matching sample directory"):
            import_sample_data(path, dirs)

    def test_lane_expansion(self, tmp_path):
        path = write_sheet(tmp_path, description=['run1', 'run2'])
        dirs = {
            f"{sample}_{lane}": str(tmp_path / f"{sample}_{lane}")
            for sample in ('run1', 'run2') for lane in ('L001', 'L002')
        }
        lanes = {sample_id: sample_id[-4:] for sample_id in dirs}
        df = import_sample_data(path, dirs, lanes)
        assert list(df.index) == ['run1_L001', 'run1_L002', 'run2_L001', 'run2_L002']
        assert list(df['lane']) == ['L001', 'L002', 'L001', 'L002']
        assert list(df['sample_name']) == ['run1', 'run1', 'run2', 'run2']


class TestSelectSamples:

    def test_all_samples(self, metadata_file, dirs):
        df = import_sample_data(metadata_file, dirs)
        selected, all_samples = select_samples(df, dirs)
        assert all_samples
        assert list(selected) == list(dirs)

    def test_subset(self, tmp_path, dirs, caplog):
        path = write_sheet(
            tmp_path,
            description=['multiplexed'],
            sequence=['GGTTGGTT'],
            sample_name=['sample2'],
        )
        df = import_sample_data(path, dirs)
        with caplog.at_level(logging.INFO):
            selected, all_samples = select_samples(df, dirs)
        assert not all_samples
        assert list(selected) == ['multiplexed_AACCAACC']
        assert "Loading a subset of samples: multiplexed-AACCAACC" in caplog.text
