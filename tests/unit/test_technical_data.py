"""
Unit tests for the product specification table parser.
"""

import pytest

from audiofast_migration.content.blocks import KeyGenerator
from audiofast_migration.content.technical_data import parse_tab, parse_technical_data
from audiofast_migration.source.models import ProductTechnicalDataRow

AMP_TABLE = """
<h3>Parametry:</h3>
<table>
  <tr><td></td><th>Amp X</th><th>Amp X SE</th></tr>
  <tr><td>Moc</td><td>100 W</td><td>150 W</td></tr>
  <tr><td>Wyjścia</td><td><ul><li>XLR</li><li>RCA</li></ul></td><td>RCA<br/>Cinch</td></tr>
  <tr><td>Zasilanie</td><td colspan="2">230 V</td></tr>
  <tr><td>Waga</td><td>12 kg</td></tr>
  <tr><td>&nbsp;</td><td>ignored</td><td>ignored</td></tr>
</table>
"""


def _texts(value: dict) -> list[str]:
    return [child["text"] for block in value["content"] for child in block["children"]]


def _tab(content: str, title: str = "Dane techniczne", sort: str = "1") -> ProductTechnicalDataRow:
    return ProductTechnicalDataRow(ProductID="5", TabSort=sort, TabTitle=title, TabContent=content)


class TestParseTab:
    @pytest.mark.unit
    def test_header_row_gives_variants(self) -> None:
        variants, groups = parse_tab(AMP_TABLE, KeyGenerator("t"))

        assert variants == ["Amp X", "Amp X SE"]
        assert len(groups) == 1
        assert groups[0]["title"] == "Parametry"
        assert [r["title"] for r in groups[0]["rows"]] == ["Moc", "Wyjścia", "Zasilanie", "Waga"]

    @pytest.mark.unit
    def test_cell_values(self) -> None:
        _, groups = parse_tab(AMP_TABLE, KeyGenerator("t"))
        moc, outputs, power, weight = groups[0]["rows"]

        assert [_texts(v) for v in moc["values"]] == [["100 W"], ["150 W"]]
        assert _texts(outputs["values"][0]) == ["XLR", "RCA"]
        assert [b["listItem"] for b in outputs["values"][0]["content"]] == ["bullet", "bullet"]
        assert _texts(outputs["values"][1]) == ["RCA", "Cinch"]
        assert [_texts(v) for v in power["values"]] == [["230 V"], ["230 V"]]
        assert [_texts(v) for v in weight["values"]] == [["12 kg"], ["-"]]

    @pytest.mark.unit
    def test_embedded_media_skipped(self) -> None:
        html = '<p><iframe src="https://www.youtube.com/embed/x"></iframe></p><p>Tylko opis.</p>'
        assert parse_tab(html, KeyGenerator("t")) == ([], [])

    @pytest.mark.unit
    def test_empty_content(self) -> None:
        assert parse_tab("  ", KeyGenerator("t")) == ([], [])
        assert parse_tab(None, KeyGenerator("t")) == ([], [])


class TestParseTechnicalData:
    @pytest.mark.unit
    def test_tabs_combined_and_padded_to_widest_table(self) -> None:
        warranty = "<table><tr><td>Gwarancja</td><td>5 lat</td></tr></table>"

        data = parse_technical_data(
            [_tab(AMP_TABLE), _tab(warranty, title="Serwis", sort="2")], KeyGenerator("p")
        )

        assert data["variants"] == ["Amp X", "Amp X SE"]
        assert [g["title"] for g in data["groups"]] == ["Parametry", "Serwis"]
        service_row = data["groups"][1]["rows"][0]
        assert service_row["title"] == "Gwarancja"
        assert [_texts(v) for v in service_row["values"]] == [["5 lat"], ["-"]]

    @pytest.mark.unit
    def test_no_tables_yields_nothing(self) -> None:
        assert parse_technical_data([_tab("<p>Brak danych</p>")], KeyGenerator("p")) is None

    @pytest.mark.unit
    def test_keys_are_deterministic(self) -> None:
        first = parse_technical_data([_tab(AMP_TABLE)], KeyGenerator("p"))
        second = parse_technical_data([_tab(AMP_TABLE)], KeyGenerator("p"))
        assert first == second
