"""Tests for SQL template interpolation."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from plugapi.exceptions import QueryTemplateError
from plugapi.sql import quote_identifier, quote_literal, render_sql


class TestQuoteLiteral:
    """Tests for quote_literal."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, "NULL"),
            (True, "TRUE"),
            (False, "FALSE"),
            (42, "42"),
            (-7, "-7"),
            (1.5, "1.5"),
            (float("nan"), "NULL"),
            (Decimal("10.25"), "10.25"),
            ("abc", "'abc'"),
            ("O'Brien", "'O''Brien'"),
            ("", "''"),
            (date(2024, 3, 1), "'2024-03-01'"),
            (datetime(2024, 3, 1, 12, 30), "'2024-03-01 12:30:00'"),
            (b"\x01\xff", "X'01FF'"),
        ],
    )
    def test_literals(self, value: object, expected: str) -> None:
        assert quote_literal(value) == expected

    def test_infinity_is_rejected(self) -> None:
        with pytest.raises(QueryTemplateError, match="infinite"):
            quote_literal(float("inf"))

    def test_unsupported_type(self) -> None:
        with pytest.raises(QueryTemplateError, match="Cannot render value of type object"):
            quote_literal(object())


class TestQuoteIdentifier:
    """Tests for quote_identifier."""

    def test_plain(self) -> None:
        assert quote_identifier("Valor") == '"Valor"'

    def test_embedded_quote(self) -> None:
        assert quote_identifier('a"b') == '"a""b"'

    @pytest.mark.parametrize("value", ["", None, 3])
    def test_invalid(self, value: object) -> None:
        with pytest.raises(QueryTemplateError):
            quote_identifier(value)


class TestRenderSql:
    """Tests for render_sql."""

    def test_no_placeholders_is_unchanged(self) -> None:
        assert render_sql("SELECT TOP 1 * FROM Contratos_VIEW") == (
            "SELECT TOP 1 * FROM Contratos_VIEW"
        )

    def test_named_values(self) -> None:
        sql = render_sql(
            "SELECT * FROM t WHERE Ano = {year} AND Nome = {name}",
            year=2024,
            name="Ponte",
        )
        assert sql == "SELECT * FROM t WHERE Ano = 2024 AND Nome = 'Ponte'"

    def test_injection_attempt_stays_a_literal(self) -> None:
        sql = render_sql("SELECT * FROM t WHERE Nome = {name}", name="x'; DROP TABLE t; --")
        assert sql == "SELECT * FROM t WHERE Nome = 'x''; DROP TABLE t; --'"

    def test_whitespace_inside_braces(self) -> None:
        assert render_sql("SELECT { value }", value=1) == "SELECT 1"

    def test_repeated_placeholder(self) -> None:
        assert render_sql("{a} + {a}", a=2) == "2 + 2"

    def test_collapse_sequence(self) -> None:
        sql = render_sql("WHERE id IN ({ids*})", ids=[1, 2, 3])
        assert sql == "WHERE id IN (1, 2, 3)"

    def test_collapse_strings(self) -> None:
        sql = render_sql("WHERE uf IN ({ufs*})", ufs=("PE", "PB"))
        assert sql == "WHERE uf IN ('PE', 'PB')"

    def test_collapse_empty_sequence(self) -> None:
        assert render_sql("WHERE id IN ({ids*})", ids=[]) == "WHERE id IN (NULL)"

    def test_collapse_scalar(self) -> None:
        assert render_sql("WHERE id IN ({ids*})", ids=5) == "WHERE id IN (5)"

    def test_sequence_without_collapse(self) -> None:
        with pytest.raises(QueryTemplateError, match=r"use \{ids\*\}"):
            render_sql("WHERE id IN ({ids})", ids=[1, 2])

    def test_identifier(self) -> None:
        sql = render_sql("SELECT {`col`} FROM t", col="Valor Total")
        assert sql == 'SELECT "Valor Total" FROM t'

    def test_identifier_collapse(self) -> None:
        sql = render_sql("SELECT {`cols`*} FROM t", cols=["Id", "Nome"])
        assert sql == 'SELECT "Id", "Nome" FROM t'

    def test_escaped_braces(self) -> None:
        assert render_sql("SELECT '{{x}}', {v}", v=1) == "SELECT '{x}', 1"

    def test_missing_value(self) -> None:
        with pytest.raises(QueryTemplateError, match="No value supplied for placeholder 'year'"):
            render_sql("WHERE Ano = {year}")

    @pytest.mark.parametrize("template", ["{a + 1}", "{}", "{f(x)}"])
    def test_expressions_are_rejected(self, template: str) -> None:
        with pytest.raises(QueryTemplateError, match="Invalid placeholder"):
            render_sql(template, a=1, f=1, x=1)

    def test_error_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            render_sql("{missing}")
