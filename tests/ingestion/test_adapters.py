"""Tests for the JSON source adapter and the record reader."""

import tempfile
from decimal import Decimal
from pathlib import Path

import pytest

from media_config import PipelineConfig
from media_ingestion.adapters import JsonSourceAdapter, RecordReader, SourceRows
from media_kernel.exceptions import MalformedSourceError, SourceNotFoundError


def _write(text: str, suffix: str = ".json") -> Path:
    with tempfile.NamedTemporaryFile(mode="w", suffix=suffix, delete=False, encoding="utf-8") as f:
        f.write(text)
        return Path(f.name)


class TestJsonSourceAdapter:
    """JSON adapter: one array per file, Decimal numbers, normalized keys."""

    def test_read_array_yields_rows_in_order(self):
        path = _write('[{"id":1},{"id":2,"name":"b"}]')
        try:
            rows = JsonSourceAdapter().read("accounts", path)
            assert rows.rows == ({"id": 1}, {"id": 2, "name": "b"})
            assert rows.skipped == 0
            assert rows.present is True
            assert len(rows) == 2
        finally:
            path.unlink()

    def test_floats_are_read_as_decimal(self):
        path = _write('[{"budget": 12.3456785}]')
        try:
            rows = JsonSourceAdapter().read("campaigns", path)
            assert rows.rows[0]["budget"] == Decimal("12.3456785")
            assert isinstance(rows.rows[0]["budget"], Decimal)
        finally:
            path.unlink()

    def test_keys_are_stripped_and_lowercased(self):
        path = _write('[{" Campaign_Number ": "CN-1", "ID": 5}]')
        try:
            rows = JsonSourceAdapter().read("campaigns", path)
            assert rows.rows[0] == {"campaign_number": "CN-1", "id": 5}
        finally:
            path.unlink()

    def test_non_object_elements_are_skipped_and_counted(self):
        path = _write('[{"id":1}, 7, "x", null, {"id":2}]')
        try:
            rows = JsonSourceAdapter().read("users", path)
            assert [r["id"] for r in rows.rows] == [1, 2]
            assert rows.skipped == 3
        finally:
            path.unlink()

    def test_missing_file_raises_source_not_found(self, tmp_path):
        with pytest.raises(SourceNotFoundError) as exc_info:
            JsonSourceAdapter().read("accounts", tmp_path / "nope.json")
        assert exc_info.value.code == "SOURCE_NOT_FOUND"
        assert exc_info.value.source_name == "accounts"

    def test_invalid_json_raises_malformed_source(self):
        path = _write('[{"id": 1},')
        try:
            with pytest.raises(MalformedSourceError) as exc_info:
                JsonSourceAdapter().read("accounts", path)
            assert exc_info.value.code == "MALFORMED_SOURCE"
        finally:
            path.unlink()

    def test_object_root_raises_malformed_source(self):
        path = _write('{"id": 1}')
        try:
            with pytest.raises(MalformedSourceError, match="expected a JSON array"):
                JsonSourceAdapter().read("accounts", path)
        finally:
            path.unlink()

    def test_wrong_encoding_raises_malformed_source(self, tmp_path):
        path = tmp_path / "accounts.json"
        path.write_bytes('[{"name": "caf\xe9"}]'.encode("latin-1"))
        with pytest.raises(MalformedSourceError, match="not utf-8"):
            JsonSourceAdapter().read("accounts", path)
        rows = JsonSourceAdapter(encoding="latin-1").read("accounts", path)
        assert rows.rows[0]["name"] == "caf\xe9"


class TestRecordReader:
    def test_reads_configured_source(self, make_export):
        reader = RecordReader(make_export(), PipelineConfig())
        rows = reader.read("campaigns")
        assert [r["id"] for r in rows.rows] == [100]

    def test_missing_required_source_raises(self, make_export):
        reader = RecordReader(make_export(strategies=None), PipelineConfig())
        with pytest.raises(SourceNotFoundError):
            reader.read("strategies")

    def test_missing_optional_source_is_empty(self, make_export):
        reader = RecordReader(make_export(platform_buy_daily_impressions=None), PipelineConfig())
        rows = reader.read("platform_buy_daily_impressions")
        assert rows.rows == ()
        assert rows.present is False

    def test_unknown_source_name_is_a_key_error(self, make_export):
        reader = RecordReader(make_export(), PipelineConfig())
        with pytest.raises(KeyError):
            reader.read("invoices")

    def test_path_for_uses_configured_filename(self, tmp_path):
        reader = RecordReader(tmp_path, PipelineConfig())
        assert reader.path_for("line_items") == tmp_path / "line_items.json"

    def test_custom_adapter_receives_resolved_path(self, make_export):
        seen = []

        class RecordingAdapter:
            def read(self, source_name, source_path):
                seen.append((source_name, source_path.name))
                return SourceRows(source_name=source_name, rows=({"id": 1},))

        reader = RecordReader(make_export(), PipelineConfig(), adapter=RecordingAdapter())
        assert reader.read("accounts").rows == ({"id": 1},)
        assert seen == [("accounts", "accounts.json")]
