"""
Unit tests for the legacy source readers: CSV exports, SQL dumps and the
reference index built over relation rows.
"""

from pathlib import Path

import pytest

from audiofast_migration.errors import SourceFileError
from audiofast_migration.source.csv_reader import clean_value, read_csv, read_optional_csv
from audiofast_migration.source.models import (
    AwardProductRow,
    AwardRow,
    DealerRow,
    ProductGalleryRow,
)
from audiofast_migration.source.reference_index import ReferenceIndex
from audiofast_migration.source.sql_dump import parse_sql_table, read_sql_dump


class TestCsvReader:
    @pytest.mark.unit
    def test_clean_value(self) -> None:
        assert clean_value("  x  ") == "x"
        assert clean_value("") is None
        assert clean_value("NULL") is None
        assert clean_value("null") is None
        assert clean_value(None) is None

    @pytest.mark.unit
    def test_rows_mapped_by_header(self, write_csv) -> None:
        path = write_csv(
            "awards/awards-all.csv",
            ["AwardID", "AwardName", "LogoID", "LogoFilename"],
            [["1", "Best Buy 2020", "7", "awards/logo.png"], ["2", "Editors Choice", "NULL", ""]],
        )
        rows = read_csv(path, AwardRow)

        assert [r.AwardID for r in rows] == ["1", "2"]
        assert rows[0].LogoFilename == "awards/logo.png"
        assert rows[1].LogoID is None
        assert rows[1].LogoFilename is None

    @pytest.mark.unit
    def test_ragged_and_blank_rows(self, tmp_path: Path) -> None:
        path = tmp_path / "relations.csv"
        path.write_text("AwardID,ProductID\n1,10\n\n2\n3,30,extra\n", encoding="utf-8")

        rows = read_csv(path, AwardProductRow)

        assert [(r.AwardID, r.ProductID) for r in rows] == [("1", "10"), ("2", None), ("3", "30")]

    @pytest.mark.unit
    def test_quoted_html_with_commas_and_newlines(self, tmp_path: Path) -> None:
        path = tmp_path / "gallery.csv"
        path.write_text(
            'ProductID,BoxID,SortOrder,FileID,ImageFilename,ImageTitle\n'
            '5,1,2,9,"a.jpg","Front, left\nside"\n',
            encoding="utf-8",
        )
        rows = read_csv(path, ProductGalleryRow)
        assert rows[0].ImageTitle == "Front, left\nside"

    @pytest.mark.unit
    def test_bom_is_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "awards.csv"
        path.write_bytes("\ufeffAwardID,AwardName\n1,X\n".encode())
        assert read_csv(path, AwardRow)[0].AwardID == "1"

    @pytest.mark.unit
    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(SourceFileError) as exc_info:
            read_csv(tmp_path / "missing.csv", AwardRow)
        assert "missing.csv" in exc_info.value.path

    @pytest.mark.unit
    def test_optional_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert read_optional_csv(tmp_path / "missing.csv", AwardRow) == []


DEALER_SQL = """
-- MySQL dump
CREATE TABLE `Dealer` (`ID` int(11) NOT NULL);
INSERT INTO `Dealer` VALUES (1,'Dealer','2020-01-01','2019-01-01',1,'Salon Audio','00-621 Warszawa',NULL,'22 123 45 67',3,'ul. Marszałkowska 1','1','info@salon.pl','www.salon.pl',1),(2,'Dealer','2020-01-01','2019-01-01',2,'O\\'Brien, Hi-Fi (Kraków)','30-001 Kraków','','+48 12 111 22 33',3,'Rynek 5','0',NULL,NULL,1);
INSERT INTO `Other` VALUES (99,'x');
INSERT INTO `Dealer` VALUES (3,'Dealer','2020-01-01','2019-01-01',3,'It''s Audio','80-001 Gdańsk',NULL,'58 000 00 00',3,'Długa 2','1','',NULL,1);
"""


class TestSqlDump:
    @pytest.mark.unit
    def test_parse_handles_escapes_and_multiple_statements(self) -> None:
        rows = parse_sql_table(DEALER_SQL, "Dealer")

        assert len(rows) == 3
        assert rows[0][0] == "1"
        assert rows[0][7] is None
        assert rows[1][5] == "O'Brien, Hi-Fi (Kraków)"
        assert rows[2][5] == "It's Audio"

    @pytest.mark.unit
    def test_other_tables_are_ignored(self) -> None:
        assert parse_sql_table(DEALER_SQL, "Other") == [["99", "x"]]
        assert parse_sql_table(DEALER_SQL, "Missing") == []

    @pytest.mark.unit
    def test_read_maps_columns_positionally(self, tmp_path: Path) -> None:
        path = tmp_path / "dump.sql"
        path.write_text(DEALER_SQL, encoding="utf-8")

        dealers = read_sql_dump(path, "Dealer", DealerRow)

        assert [d.ID for d in dealers] == ["1", "2", "3"]
        assert dealers[0].Name == "Salon Audio"
        assert dealers[0].City == "00-621 Warszawa"
        assert dealers[0].WWW == "www.salon.pl"
        assert dealers[1].Publish == "0"
        assert dealers[1].Address is None
        assert dealers[2].Email is None

    @pytest.mark.unit
    def test_short_tuples_are_skipped(self, tmp_path: Path) -> None:
        path = tmp_path / "dump.sql"
        path.write_text("INSERT INTO `Dealer` VALUES (1,'too short');", encoding="utf-8")
        assert read_sql_dump(path, "Dealer", DealerRow) == []

    @pytest.mark.unit
    def test_missing_dump_raises(self, tmp_path: Path) -> None:
        with pytest.raises(SourceFileError):
            read_sql_dump(tmp_path / "none.sql", "Dealer", DealerRow)


class TestReferenceIndex:
    @pytest.mark.unit
    def test_groups_children_in_source_order(self) -> None:
        rows = [
            AwardProductRow(AwardID="1", ProductID="10"),
            AwardProductRow(AwardID="2", ProductID="20"),
            AwardProductRow(AwardID="1", ProductID="11"),
        ]
        index = ReferenceIndex.build(rows, "AwardID", child="ProductID")

        assert index.get("1") == ["10", "11"]
        assert index.get(2) == ["20"]
        assert index.get("3") == []
        assert list(index) == ["1", "2"]
        assert index.populated_count == 2

    @pytest.mark.unit
    def test_drops_rows_without_keys(self) -> None:
        rows = [
            AwardProductRow(AwardID=None, ProductID="10"),
            AwardProductRow(AwardID="1", ProductID=None),
            AwardProductRow(AwardID="1", ProductID="12"),
        ]
        index = ReferenceIndex.build(rows, "AwardID", child="ProductID")

        assert index.dropped == 2
        assert index.get("1") == ["12"]

    @pytest.mark.unit
    def test_dedupe_per_parent(self) -> None:
        rows = [
            AwardProductRow(AwardID="1", ProductID="10"),
            AwardProductRow(AwardID="1", ProductID="10"),
            AwardProductRow(AwardID="2", ProductID="10"),
        ]
        index = ReferenceIndex.build(rows, "AwardID", child="ProductID", dedupe=lambda r: r.ProductID)

        assert index.get("1") == ["10"]
        assert index.get("2") == ["10"]
        assert index.duplicates == 1

    @pytest.mark.unit
    def test_whole_rows_stored_without_child(self) -> None:
        row = AwardProductRow(AwardID="1", ProductID="10")
        index = ReferenceIndex.build([row], "AwardID")

        assert index.get("1") == [row]
        assert "1" in index
        assert len(index) == 1

    @pytest.mark.unit
    def test_get_returns_copy(self) -> None:
        index = ReferenceIndex.build([AwardProductRow(AwardID="1", ProductID="10")], "AwardID", child="ProductID")
        index.get("1").append("99")
        assert index.get("1") == ["10"]
