"""
Unit tests for metadata derivation and the per-type cache.

Run with: pytest src/rowmapper/mapping/metadata_test.py -v
"""
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime
from unittest.mock import patch

import pytest

from rowmapper import Row
from rowmapper.errors import BindingError, MalformedQueryError, UnsupportedFieldTypeError
from rowmapper.mapping import metadata as metadata_module
from rowmapper.mapping.declarations import SemanticType, column, describe_fields, select
from rowmapper.mapping.metadata import derive, resolve


@dataclass
class EmployeeRow(Row):
    id: int | None = None
    first_name: str | None = None
    last_name: str | None = None
    mgr_id: int | None = None


@select("select user_name, email, age, password from user")
@dataclass
class UserRow(Row):
    age: int | None = None
    user_name: str | None = None
    mail: str | None = None
    password: str | None = None


@select("select first_name as fname, count(*) as tally from employee where id > ? group by fname")
@dataclass
class EmpFnameCounts(Row):
    count: int | None = column(order=2)
    fname: str | None = None


@dataclass
class DocumentRow(Row):
    doc_id: int | None = column(primary_key=True)
    title: str | None = None
    revision: int | None = column(version=True)


@dataclass
class NoteRow(Row):
    id: int | None = None
    body: str | None = None
    written_on: date | None = None
    updated_at: datetime | None = column(version=True, db_generated=True)


class TestDescribeFields:
    """Tests for describe_fields()"""

    def test_bookkeeping_fields_excluded(self):
        names = [spec.name for spec in describe_fields(EmployeeRow)]

        assert names == ["id", "first_name", "last_name", "mgr_id"]

    def test_semantic_types(self):
        specs = {spec.name: spec for spec in describe_fields(NoteRow)}

        assert specs["id"].semantic_type is SemanticType.INTEGER
        assert specs["body"].semantic_type is SemanticType.TEXT
        assert specs["written_on"].semantic_type is SemanticType.DATE
        assert specs["updated_at"].semantic_type is SemanticType.DATE
        assert specs["updated_at"].python_type is datetime
        assert specs["updated_at"].version and specs["updated_at"].db_generated

    @pytest.mark.parametrize("field_type", [float, bool, bytes, list])
    def test_unsupported_type_raises(self, field_type):
        @dataclass
        class OddRow(Row):
            id: int | None = None
            value: field_type = None

        with pytest.raises(UnsupportedFieldTypeError, match="OddRow.value"):
            describe_fields(OddRow)

    def test_non_dataclass_raises(self):
        class Plain:
            id: int

        with pytest.raises(TypeError, match="must be a dataclass"):
            describe_fields(Plain)

    def test_order_must_be_one_based(self):
        with pytest.raises(ValueError, match="1-based"):
            column(order=0)


class TestDerive:
    """Tests for metadata derivation"""

    def test_generated_select(self):
        metadata = resolve(EmployeeRow)

        assert metadata.table == "employee"
        assert metadata.query == "select id, first_name, last_name, mgr_id from employee"
        assert metadata.columns == ("id", "first_name", "last_name", "mgr_id")
        assert [spec.name for spec in metadata.column_to_field.values()] == [
            "id", "first_name", "last_name", "mgr_id",
        ]

    def test_primary_key_by_name(self):
        metadata = resolve(EmployeeRow)

        assert metadata.primary_key.name == "id"
        assert metadata.pk_column == "id"
        assert metadata.pk_camel_name == "id"
        assert metadata.version is None

    def test_explicit_select_binds_by_substring(self):
        metadata = resolve(UserRow)

        assert metadata.table == "user"
        bound = {spec.name: position for position, spec in metadata.column_to_field.items()}
        assert bound == {"user_name": 1, "mail": 2, "age": 3, "password": 4}
        assert metadata.primary_key is None

    def test_explicit_order_annotation(self):
        metadata = resolve(EmpFnameCounts)

        assert metadata.columns == ("fname", "tally")
        assert metadata.column_to_field[2].name == "count"
        assert metadata.column_to_field[1].name == "fname"

    def test_annotated_primary_key_and_version(self):
        metadata = resolve(DocumentRow)

        assert metadata.primary_key.name == "doc_id"
        assert metadata.pk_column == "doc_id"
        assert metadata.pk_camel_name == "docId"
        assert metadata.version.name == "revision"
        assert metadata.version_column == "revision"

    def test_column_to_field_is_read_only(self):
        metadata = resolve(EmployeeRow)

        with pytest.raises(TypeError):
            metadata.column_to_field[9] = None

    def test_unmatched_field_raises(self):
        @select("select user_name, age from user")
        @dataclass
        class BadRow(Row):
            user_name: str | None = None
            nickname: str | None = None

        with pytest.raises(BindingError, match="nickname") as exc_info:
            resolve(BadRow)

        assert exc_info.value.record_type is BadRow
        assert exc_info.value.query == "select user_name, age from user"

    def test_order_beyond_columns_raises(self):
        @select("select a from t")
        @dataclass
        class FarRow(Row):
            a: int | None = None
            b: int | None = column(order=5)

        with pytest.raises(BindingError, match="exceeds"):
            resolve(FarRow)

    def test_multiple_primary_keys_raise(self):
        @dataclass
        class TwoKeysRow(Row):
            id: int | None = None
            code: str | None = column(primary_key=True)

        with pytest.raises(BindingError, match="Multiple primary key"):
            resolve(TwoKeysRow)

    def test_multiple_versions_raise(self):
        @dataclass
        class TwoVersionsRow(Row):
            id: int | None = None
            rev: int | None = column(version=True)
            stamp: date | None = column(version=True)

        with pytest.raises(BindingError, match="Multiple version"):
            resolve(TwoVersionsRow)

    def test_malformed_select_raises(self):
        @select("select f(a from t")
        @dataclass
        class BrokenRow(Row):
            a: int | None = None

        with pytest.raises(MalformedQueryError):
            resolve(BrokenRow)

    def test_ambiguous_match_takes_first_column(self):
        # Latent defect, kept on purpose: "id" is contained in both
        # "mgr_id" and "id", and the first column wins without an error.
        @select("select mgr_id, id from employee")
        @dataclass
        class AmbiguousRow(Row):
            id: int | None = None

        metadata = resolve(AmbiguousRow)

        assert metadata.column_to_field[1].name == "id"
        assert 2 not in metadata.column_to_field
        assert metadata.pk_column == "mgr_id"

    def test_replaced_binding_is_logged(self):
        @select("select user_name, name from user")
        @dataclass
        class OverlapRow(Row):
            user_name: str | None = None
            name: str | None = None

        with patch.object(metadata_module, "log") as log_spy:
            metadata = resolve(OverlapRow)

        assert metadata.column_to_field[1].name == "name"
        assert 2 not in metadata.column_to_field
        log_spy.warning.assert_called_once_with(
            "field_binding_replaced",
            record_type="OverlapRow",
            column="user_name",
            dropped="user_name",
            kept="name",
        )


class TestCache:
    """Tests for the resolve() cache"""

    def test_resolve_is_cached(self):
        assert resolve(EmployeeRow) is resolve(EmployeeRow)

    def test_failed_resolution_is_not_cached(self):
        @select("select a from t")
        @dataclass
        class FlakyRow(Row):
            b: int | None = None

        with pytest.raises(BindingError):
            resolve(FlakyRow)

        assert FlakyRow not in metadata_module._cache

    def test_concurrent_first_resolution_converges(self):
        barrier = threading.Barrier(8)

        def resolve_after_barrier(record_type):
            barrier.wait()
            return resolve(record_type)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(resolve_after_barrier, [EmployeeRow] * 8))

        assert all(result is results[0] for result in results)

    def test_duplicate_derivations_agree(self):
        first = derive(DocumentRow)
        second = derive(DocumentRow)

        assert first.table == second.table
        assert first.columns == second.columns
        assert first.primary_key == second.primary_key
        assert first.column_to_field == second.column_to_field
