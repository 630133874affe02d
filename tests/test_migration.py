"""
Tests for JSON and CSV migration.
"""

import csv
import io
import json

import pytest

from jobvault.errors import CorruptedError, UnsupportedFormatError, ValidationFailedError
from jobvault.migration import MigrationOptions, export_records, import_records
from jobvault.models import FIELD_MAP, ApplicationRecord


class TestJsonExport:
    """Test structured export."""

    def test_wrapped_with_metadata(self, sample_records):
        data = json.loads(export_records(sample_records, MigrationOptions(target_format="json")))

        assert len(data["applications"]) == 3
        assert data["applications"][0]["appliedDate"] == "2024-03-01"
        assert data["metadata"]["applicationCount"] == 3
        assert "exportDate" in data["metadata"]
        assert data["metadata"]["version"].startswith("v")

    def test_without_metadata(self, sample_records):
        options = MigrationOptions(target_format="json", include_metadata=False)
        data = json.loads(export_records(sample_records, options))

        assert "metadata" not in data

    def test_round_trip(self, sample_records, acme_record):
        records = sample_records + [acme_record]
        records[-1].id = "app_4"
        data = export_records(records, MigrationOptions(target_format="json"))

        assert import_records(data, MigrationOptions(source_format="json")) == records

    def test_validate_blocks_invalid_export(self):
        options = MigrationOptions(target_format="json", validate=True)

        with pytest.raises(ValidationFailedError) as exc_info:
            export_records([ApplicationRecord(company="Acme", position="SWE")], options)
        assert exc_info.value.result.errors[0].field == "id"


class TestJsonImport:
    """Test structured import."""

    def test_bare_array(self):
        data = json.dumps([{"id": "a", "company": "Acme", "position": "SWE"}]).encode()
        records = import_records(data, MigrationOptions(source_format="json"))

        assert records[0].company == "Acme"

    def test_invalid_json(self):
        with pytest.raises(CorruptedError):
            import_records(b"{nope", MigrationOptions(source_format="json"))

    def test_wrong_shape(self):
        with pytest.raises(CorruptedError):
            import_records(b'{"applications": "x"}', MigrationOptions(source_format="json"))

    def test_validate_repairs(self):
        data = json.dumps([
            {"id": "", "company": "Google", "position": "SWE"},
            {"id": "", "company": "Google", "position": "SWE"},
        ]).encode()
        records = import_records(data, MigrationOptions(source_format="json", validate=True))

        assert records[0].id and records[1].id
        assert records[0].id != records[1].id

    def test_without_validate_returns_raw(self):
        data = json.dumps([{"id": "", "company": "", "position": ""}]).encode()
        records = import_records(data, MigrationOptions(source_format="json"))

        assert records[0].id == ""


class TestCsv:
    """Test delimited export and import."""

    def test_header_and_rows(self, sample_records):
        text = export_records(sample_records, MigrationOptions(target_format="csv")).decode()
        rows = list(csv.reader(io.StringIO(text)))

        assert rows[0] == list(FIELD_MAP)
        assert len(rows) == 4
        assert rows[1][0] == "app_1"

    def test_quoting_delimiters_and_quotes(self):
        record = ApplicationRecord(
            id="a",
            company='Acme, "The Best" Inc',
            position="SWE",
            notes="line one\nline two",
            tags=["remote", "python"],
        )
        text = export_records([record], MigrationOptions(target_format="csv")).decode()

        assert '"Acme, ""The Best"" Inc"' in text
        assert "remote; python" in text

        back = import_records(text.encode(), MigrationOptions(source_format="csv"))[0]
        assert back.company == 'Acme, "The Best" Inc'
        assert back.notes == "line one\nline two"
        assert back.tags == ["remote", "python"]

    def test_round_trip(self, sample_records):
        data = export_records(sample_records, MigrationOptions(target_format="csv"))
        assert import_records(data, MigrationOptions(source_format="csv")) == sample_records

    def test_header_only(self):
        data = (",".join(FIELD_MAP) + "\n").encode()
        assert import_records(data, MigrationOptions(source_format="csv")) == []

    def test_empty_input_rejected(self):
        with pytest.raises(CorruptedError, match="empty"):
            import_records(b"", MigrationOptions(source_format="csv"))
        with pytest.raises(CorruptedError, match="empty"):
            import_records(b"  \n\n", MigrationOptions(source_format="csv"))

    def test_dates_standardized(self):
        data = b"id,company,position,appliedDate,responseDate\na,Acme,SWE,03/15/2024,20.03.2024\n"
        record = import_records(data, MigrationOptions(source_format="csv"))[0]

        assert record.applied_date == "2024-03-15"
        assert record.response_date == "2024-03-20"
        assert record.location is None

    def test_extra_fields_exported_as_columns(self):
        rated = ApplicationRecord(id="a", company="Acme", position="SWE",
                                  extra={"source": "referral", "rating": 4})
        plain = ApplicationRecord(id="b", company="Globex", position="Analyst")
        text = export_records([rated, plain], MigrationOptions(target_format="csv")).decode()
        rows = list(csv.reader(io.StringIO(text)))

        assert rows[0] == list(FIELD_MAP) + ["rating", "source"]
        assert rows[1][-2:] == ["4", "referral"]
        assert rows[2][-2:] == ["", ""]

        back = import_records(text.encode(), MigrationOptions(source_format="csv"))
        assert back[0].extra == {"rating": "4", "source": "referral"}
        assert back[1].extra == {}

    def test_tag_containing_separator_splits(self):
        record = ApplicationRecord(id="a", company="Acme", position="SWE", tags=["c++; rust"])
        data = export_records([record], MigrationOptions(target_format="csv"))

        back = import_records(data, MigrationOptions(source_format="csv"))[0]
        assert back.tags == ["c++", "rust"]

    def test_unknown_columns_kept(self):
        data = b"id,company,position,rating\na,Acme,SWE,5\n"
        record = import_records(data, MigrationOptions(source_format="csv"))[0]

        assert record.extra == {"rating": "5"}

    def test_bom_tolerated(self):
        data = "\ufeffid,company,position\na,Acme,SWE\n".encode("utf-8")
        assert import_records(data, MigrationOptions(source_format="csv"))[0].id == "a"


class TestFormats:
    """Test unsupported formats."""

    def test_unknown_export_format(self, sample_records):
        with pytest.raises(UnsupportedFormatError):
            export_records(sample_records, MigrationOptions(target_format="xml"))

    def test_unknown_import_format(self):
        with pytest.raises(UnsupportedFormatError):
            import_records(b"[]", MigrationOptions(source_format="excel"))
