#!/usr/bin/env python3
"""
Tests for src/stages/s00_ingest.py

Tests cover:
- Downloading (fetch_dataset) with the network mocked
- Parsing delimited text (parse_dataset)
- Column selection, renaming and typing (standardize_columns)
- Local-file loading (load_observations)
- Stage entry point (main)
"""
from __future__ import annotations

import io
import socket
from pathlib import Path
from unittest.mock import patch, MagicMock
from urllib.error import URLError
import sys

import pytest
import pandas as pd

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / 'src'))

from config import CANONICAL_COLUMNS
from stages.s00_ingest import (
    FetchError,
    ParseError,
    fetch_dataset,
    parse_dataset,
    standardize_columns,
    load_observations,
    _to_flag,
)


def _mock_response(payload: bytes) -> MagicMock:
    """Context-manager response object as returned by urlopen."""
    response = MagicMock()
    response.read.return_value = payload
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    return response


# ============================================================
# FETCH TESTS
# ============================================================

class TestFetchDataset:
    """Tests for the fetch_dataset function."""

    def test_returns_body(self, raw_csv_text):
        """Test that the response body is returned unchanged."""
        payload = raw_csv_text.encode('utf-8')
        with patch('stages.s00_ingest.urlopen', return_value=_mock_response(payload)):
            assert fetch_dataset('https://example.org/data.csv') == payload

    def test_url_error_raises_fetch_error(self):
        """Test that a transport failure becomes FetchError."""
        with patch('stages.s00_ingest.urlopen', side_effect=URLError('no route')):
            with pytest.raises(FetchError, match='no route'):
                fetch_dataset('https://example.org/data.csv')

    def test_timeout_raises_fetch_error(self):
        """Test that a timeout becomes FetchError."""
        with patch('stages.s00_ingest.urlopen', side_effect=socket.timeout('timed out')):
            with pytest.raises(FetchError):
                fetch_dataset('https://example.org/data.csv', timeout=1)

    def test_fetch_error_is_not_parse_error(self):
        """Test that the two failure kinds stay distinguishable."""
        assert not issubclass(FetchError, ParseError)
        assert not issubclass(ParseError, FetchError)


# ============================================================
# PARSE TESTS
# ============================================================

class TestParseDataset:
    """Tests for the parse_dataset function."""

    def test_parses_bytes(self, raw_csv_text):
        """Test parsing UTF-8 bytes."""
        df = parse_dataset(raw_csv_text.encode('utf-8'))

        assert len(df) == 6
        assert 'subid_unique' in df.columns

    def test_parses_str(self, raw_csv_text):
        """Test parsing text."""
        assert len(parse_dataset(raw_csv_text)) == 6

    def test_empty_raises(self):
        """Test that empty content raises ParseError."""
        with pytest.raises(ParseError, match='empty'):
            parse_dataset(b'')

    def test_missing_columns_raises(self):
        """Test that a table without the expected columns raises ParseError."""
        with pytest.raises(ParseError, match='missing required columns'):
            parse_dataset(b'a,b\n1,2\n')

    def test_invalid_encoding_raises(self):
        """Test that undecodable bytes raise ParseError."""
        with pytest.raises(ParseError, match='UTF-8'):
            parse_dataset(b'\xff\xfe\x00bad')

    def test_malformed_rows_raise(self, raw_csv_text):
        """Test that a row with too many fields raises ParseError."""
        bad = raw_csv_text + 'x,y,z,1,2,3,4,5,6,7,8,9,10\n'
        with pytest.raises(ParseError, match='Malformed'):
            parse_dataset(bad)

    def test_short_row_raises(self, raw_csv_text):
        """Test that a row with too few fields raises ParseError instead of padding."""
        bad = raw_csv_text + 'lab3:s9,lab3,singlescreen,TRUE\n'
        with pytest.raises(ParseError, match=r'line 8 has 4 field\(s\), header has 10'):
            parse_dataset(bad)

    def test_blank_lines_are_skipped(self, raw_csv_text):
        """Test that blank lines are not counted as short rows."""
        assert len(parse_dataset(raw_csv_text + '\n')) == 6


# ============================================================
# STANDARDIZE TESTS
# ============================================================

class TestStandardizeColumns:
    """Tests for the standardize_columns function."""

    def test_canonical_columns_only(self, raw_csv_text):
        """Test that unused raw columns are dropped and the rest renamed."""
        df = standardize_columns(parse_dataset(raw_csv_text))

        assert list(df.columns) == CANONICAL_COLUMNS
        assert 'stimulus' not in df.columns

    def test_language_group_is_boolean(self, raw_csv_text):
        """Test TRUE/FALSE text becomes a nullable boolean."""
        df = standardize_columns(parse_dataset(raw_csv_text))

        assert str(df['language_group'].dtype) == 'boolean'
        assert df['language_group'].tolist() == [True, True, False, True, True, True]

    def test_numeric_columns(self, raw_csv_text):
        """Test that numeric columns are floats with missing values kept."""
        df = standardize_columns(parse_dataset(raw_csv_text))

        assert df['age_months'].dtype == float
        assert df['looking_time'].dtype == float
        assert df['looking_time'].isna().sum() == 1

    def test_does_not_modify_input(self, raw_csv_text):
        """Test that the parsed table is left untouched."""
        raw = parse_dataset(raw_csv_text)
        before = raw.copy()

        standardize_columns(raw)

        pd.testing.assert_frame_equal(raw, before)

    def test_non_numeric_cell_raises(self, raw_csv_text):
        """Test that text in a numeric column raises ParseError."""
        bad = raw_csv_text.replace(',IDS,8.2,', ',IDS,eight,')
        with pytest.raises(ParseError, match="Non-numeric value in 'looking_time' at row 0"):
            standardize_columns(parse_dataset(bad))

    def test_na_tokens_stay_missing(self, raw_csv_text):
        """Test that NA tokens are read as missing rather than rejected."""
        text = raw_csv_text.replace(',IDS,8.2,', ',IDS,NA,')
        df = standardize_columns(parse_dataset(text))

        assert df['looking_time'].isna().sum() == 2


class TestToFlag:
    """Tests for the _to_flag helper."""

    @pytest.mark.parametrize('value,expected', [
        ('TRUE', True), ('false', False), (True, True), ('1', True), ('no', False),
    ])
    def test_known_values(self, value, expected):
        assert _to_flag(value) is expected

    @pytest.mark.parametrize('value', [None, float('nan'), 'maybe'])
    def test_unknown_values_are_missing(self, value):
        assert _to_flag(value) is None


# ============================================================
# LOAD TESTS
# ============================================================

class TestLoadObservations:
    """Tests for the load_observations function."""

    def test_local_source(self, temp_dir, raw_csv_text):
        """Test reading a local CSV without touching the network."""
        path = temp_dir / 'trials.csv'
        path.write_text(raw_csv_text)

        with patch('stages.s00_ingest.urlopen') as mock_urlopen:
            df = load_observations(source=path)

        mock_urlopen.assert_not_called()
        assert len(df) == 6

    def test_missing_local_source_raises(self, temp_dir):
        """Test that an unreadable local file raises FetchError."""
        with pytest.raises(FetchError):
            load_observations(source=temp_dir / 'absent.csv')

    def test_remote_source(self, raw_csv_text):
        """Test the download path."""
        payload = raw_csv_text.encode('utf-8')
        with patch('stages.s00_ingest.urlopen', return_value=_mock_response(payload)):
            df = load_observations(url='https://example.org/data.csv')

        assert list(df.columns) == CANONICAL_COLUMNS


# ============================================================
# MAIN TESTS
# ============================================================

class TestMain:
    """Tests for the stage entry point."""

    def test_writes_raw_table(self, temp_dir, raw_csv_text, isolated_outputs, monkeypatch):
        """Test that main writes the standardized table."""
        import stages.s00_ingest as s00

        source = temp_dir / 'trials.csv'
        source.write_text(raw_csv_text)
        out = isolated_outputs['data_work'] / 'data_raw.parquet'
        monkeypatch.setattr(s00, 'RAW_PATH', out)

        df = s00.main(source=source, verbose=False)

        assert out.exists()
        assert len(pd.read_parquet(out)) == len(df)

    def test_fetch_failure_exits(self, isolated_outputs, monkeypatch):
        """Test that a fetch failure exits with status 1."""
        import stages.s00_ingest as s00

        monkeypatch.setattr(s00, 'RAW_PATH', isolated_outputs['data_work'] / 'data_raw.parquet')

        with patch('stages.s00_ingest.urlopen', side_effect=URLError('down')):
            with pytest.raises(SystemExit) as exc:
                s00.main(url='https://example.org/data.csv')

        assert exc.value.code == 1
