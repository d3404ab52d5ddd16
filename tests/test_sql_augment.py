"""Tests for the geometry filter added to sub-layer SQL."""

import pytest
import sqlglot
from sqlglot import exp

from cdbexport.domain.models import Sublayer
from cdbexport.sql import add_geometry_filter, augment_sql, geometry_not_null, get_sublayer_sql, parse
from cdbexport.types import SqlParseError


def canonical(sql):
    """Render ``sql`` the way sqlglot would, so comparisons ignore spacing and case."""
    return sqlglot.parse_one(sql, read="postgres").sql(dialect="postgres")


def outer_geometry_predicate(sql):
    """The last conjunct of the outermost WHERE clause."""
    condition = sqlglot.parse_one(sql, read="postgres").args["where"].this
    return condition.expression if isinstance(condition, exp.And) else condition


GEOMETRY_PREDICATE = '"the_geom" IS NOT NULL'


class TestAugmentSql:

    def test_existing_where_is_wrapped_with_and(self):
        assert canonical(augment_sql("SELECT * FROM my_table WHERE id > 5")) == canonical(
            'SELECT * FROM my_table WHERE (id > 5) AND "the_geom" IS NOT NULL'
        )

    def test_missing_where_is_created(self):
        assert canonical(augment_sql("SELECT * FROM my_table")) == canonical(
            'SELECT * FROM my_table WHERE "the_geom" IS NOT NULL'
        )

    def test_where_goes_before_group_by(self):
        augmented = augment_sql("SELECT * FROM my_table GROUP BY hamster")
        assert augmented.index("WHERE") < augmented.index("GROUP BY")
        assert canonical(augmented) == canonical(
            'SELECT * FROM my_table WHERE "the_geom" IS NOT NULL GROUP BY hamster'
        )

    def test_or_condition_keeps_precedence(self):
        assert canonical(augment_sql("SELECT * FROM t WHERE a = 1 OR b = 2")) == canonical(
            'SELECT * FROM t WHERE (a = 1 OR b = 2) AND "the_geom" IS NOT NULL'
        )

    def test_order_by_and_limit_are_kept_after_where(self):
        augmented = augment_sql("SELECT name FROM t ORDER BY name DESC LIMIT 10")
        assert augmented.index("WHERE") < augmented.index("ORDER BY") < augmented.index("LIMIT")
        assert canonical(augmented) == canonical(
            'SELECT name FROM t WHERE "the_geom" IS NOT NULL ORDER BY name DESC LIMIT 10'
        )

    def test_multiline_input_renders_on_one_line(self):
        augmented = augment_sql("SELECT *\nFROM my_table\nWHERE id > 5\n")
        assert "\n" not in augmented
        assert canonical(augmented) == canonical(
            'SELECT * FROM my_table WHERE (id > 5) AND "the_geom" IS NOT NULL'
        )

    def test_trailing_semicolon_is_accepted(self):
        assert canonical(augment_sql("SELECT * FROM my_table;")) == canonical(
            'SELECT * FROM my_table WHERE "the_geom" IS NOT NULL'
        )

    def test_identifiers_keep_their_case_and_quoting(self):
        augmented = augment_sql('SELECT "Name", cartodb_id FROM "My Table"')
        assert '"Name"' in augmented
        assert '"My Table"' in augmented
        assert "cartodb_id" in augmented

    def test_string_literals_survive(self):
        augmented = augment_sql("SELECT * FROM t WHERE name = 'O''Brien'")
        assert "'O''Brien'" in augmented

    def test_aggregate_with_having(self):
        sql = "SELECT colony, count(*) AS n FROM mice GROUP BY colony HAVING count(*) > 1"
        assert canonical(augment_sql(sql)) == canonical(
            'SELECT colony, count(*) AS n FROM mice WHERE "the_geom" IS NOT NULL '
            "GROUP BY colony HAVING count(*) > 1"
        )

    def test_join_conditions_are_untouched(self):
        assert canonical(augment_sql("SELECT a.* FROM a JOIN b ON a.id = b.a_id")) == canonical(
            'SELECT a.* FROM a JOIN b ON a.id = b.a_id WHERE "the_geom" IS NOT NULL'
        )

    def test_only_outer_statement_is_filtered(self):
        sql = "SELECT * FROM (SELECT * FROM t WHERE x > 1) sub"
        assert canonical(augment_sql(sql)) == canonical(
            'SELECT * FROM (SELECT * FROM t WHERE x > 1) AS sub WHERE "the_geom" IS NOT NULL'
        )

    def test_cte_query_filters_the_main_select(self):
        sql = "WITH big AS (SELECT * FROM cities WHERE pop > 1000000) SELECT * FROM big"
        assert canonical(augment_sql(sql)) == canonical(
            "WITH big AS (SELECT * FROM cities WHERE pop > 1000000) "
            'SELECT * FROM big WHERE "the_geom" IS NOT NULL'
        )

    def test_union_is_filtered_as_derived_table(self):
        sql = "SELECT id, the_geom FROM a UNION ALL SELECT id, the_geom FROM b"
        assert canonical(augment_sql(sql)) == canonical(
            "SELECT * FROM (SELECT id, the_geom FROM a UNION ALL SELECT id, the_geom FROM b) AS _sublayer "
            'WHERE "the_geom" IS NOT NULL'
        )

    def test_custom_geometry_column(self):
        augmented = augment_sql("SELECT * FROM t", column="the_geom_webmercator")
        assert canonical(augmented) == canonical('SELECT * FROM t WHERE "the_geom_webmercator" IS NOT NULL')

    def test_augmenting_twice_adds_the_filter_twice(self):
        twice = augment_sql(augment_sql("SELECT * FROM t"))
        assert twice.count('"the_geom"') == 2

    @pytest.mark.parametrize("sql", [
        "SELECT * FROM t WHERE the_geom && ST_MakeEnvelope(-10, -10, 10, 10, 4326)",
        "SELECT * FROM t WHERE name ~ '^a'",
        "SELECT first, last FROM t",
        "SELECT * FROM t WHERE d > date '2020-01-01'",
        "SELECT id, row_number() OVER (PARTITION BY region ORDER BY pop DESC) AS rn FROM cities",
        "SELECT * FROM events WHERE EXTRACT(year FROM d) = 2020",
        "WITH recent AS (SELECT * FROM events) SELECT * FROM recent WHERE id > 1",
        "SELECT * FROM events WHERE d > now() - interval '1 day'",
        "SELECT * FROM parks WHERE tags @> ARRAY['playground']",
        "SELECT * FROM t WHERE ST_DWithin(the_geom::geography, ST_MakePoint(0, 0)::geography, 1000)",
        "SELECT DISTINCT ON (region) region, name FROM cities ORDER BY region, pop DESC",
        "SELECT * FROM t WHERE name ILIKE '%park%' OR kind IN ('a', 'b')",
        "SELECT cartodb_id, ST_Area(the_geom) AS area, pop::numeric FROM countries LIMIT 10",
    ])
    def test_postgres_and_postgis_queries(self, sql):
        augmented = augment_sql(sql)
        assert "\n" not in augmented
        assert outer_geometry_predicate(augmented).sql(dialect="postgres") == (
            geometry_not_null().sql(dialect="postgres")
        )

    @pytest.mark.parametrize("sql", [
        "",
        "   ",
        "DELETE FROM t",
        "INSERT INTO t VALUES (1)",
        "SELECT * FROM t WHERE",
        "SELECT * FROM t WHERE (a > 1",
        "SELECT * FROM t WHERE name = 'unterminated",
        "SELECT * FROM a; SELECT * FROM b",
    ])
    def test_invalid_sql_raises(self, sql):
        with pytest.raises(SqlParseError):
            augment_sql(sql)

    def test_parse_error_reports_location(self):
        sql = "SELECT * FROM t WHERE"
        with pytest.raises(SqlParseError) as excinfo:
            augment_sql(sql)
        assert excinfo.value.sql == sql
        assert excinfo.value.line == 1
        assert "line 1" in str(excinfo.value)

    def test_non_query_statement_is_named(self):
        with pytest.raises(SqlParseError, match="DELETE"):
            augment_sql("DELETE FROM t")


class TestAddGeometryFilter:

    def test_input_tree_is_not_modified(self):
        query = parse("SELECT * FROM t WHERE id > 5")
        before = query.sql()

        filtered = add_geometry_filter(query)

        assert query.sql() == before
        assert filtered is not query
        old_condition = filtered.args["where"].this.this
        assert isinstance(old_condition, exp.Paren)
        assert old_condition.this.sql() == query.args["where"].this.sql()

    def test_set_operation_becomes_subquery(self):
        query = parse("SELECT id FROM a EXCEPT SELECT id FROM b")

        filtered = add_geometry_filter(query)

        assert isinstance(filtered, exp.Select)
        subquery = filtered.find(exp.Subquery)
        assert subquery.alias == "_sublayer"
        assert isinstance(subquery.this, exp.Except)

    def test_predicate_is_a_quoted_not_null_check(self):
        assert geometry_not_null().sql(dialect="postgres") == (
            sqlglot.parse_one(GEOMETRY_PREDICATE, read="postgres").sql(dialect="postgres")
        )
        column = geometry_not_null().find(exp.Column)
        assert column.name == "the_geom"
        assert column.this.quoted


class TestGetSublayerSql:

    def test_uses_sublayer_query(self):
        sublayer = Sublayer.model_validate({"options": {"sql": "SELECT * FROM hamsters"}})
        assert canonical(get_sublayer_sql(sublayer)) == canonical(
            'SELECT * FROM hamsters WHERE "the_geom" IS NOT NULL'
        )

    @pytest.mark.parametrize("options", [{}, {"sql": None}, {"sql": "   "}])
    def test_missing_query_raises(self, options):
        sublayer = Sublayer.model_validate({"options": options})
        with pytest.raises(SqlParseError, match="no SQL query"):
            get_sublayer_sql(sublayer)
