import pytest

from schema_sync.core import (
    insert_missing_commas, normalize_sql, parse_sql, quote_spaced_identifiers,
    remove_duplicate_alter_statements,
)
from schema_sync.core.sql_normalizer import protect_literals, restore_literals

FK_SECTION = """CREATE TABLE customers (id int PRIMARY KEY);
CREATE TABLE orders (id int PRIMARY KEY, customer_id int);

-- Foreign Key Constraints
ALTER TABLE orders ADD CONSTRAINT fk_a FOREIGN KEY (customer_id) REFERENCES customers(id);
ALTER TABLE orders ADD CONSTRAINT fk_a FOREIGN KEY (customer_id) REFERENCES customers(id);
"""


def test_duplicate_alter_statements_are_removed():
    fixed = remove_duplicate_alter_statements(FK_SECTION)
    assert fixed.count('ALTER TABLE') == 1
    assert fixed.startswith('CREATE TABLE customers')


def test_duplicates_outside_the_section_are_kept():
    sql = FK_SECTION.replace('-- Foreign Key Constraints', '-- something else')
    assert remove_duplicate_alter_statements(sql) == sql


def test_section_ends_at_next_comment():
    sql = FK_SECTION + "-- Manual\n" + FK_SECTION.splitlines()[-1] + "\n"
    fixed = remove_duplicate_alter_statements(sql)
    assert fixed.count('ALTER TABLE') == 2


def test_spaced_table_names_are_quoted():
    sql = ("CREATE TABLE order items (id int PRIMARY KEY);\n"
           "CREATE TABLE line (item_id int REFERENCES order items(id));\n"
           "ALTER TABLE order items ADD COLUMN note text;\n")
    fixed = quote_spaced_identifiers(sql)
    assert 'CREATE TABLE "order items" (' in fixed
    assert 'REFERENCES "order items"(id)' in fixed
    assert 'ALTER TABLE "order items" ADD COLUMN' in fixed

    graph, _ = parse_sql(fixed)
    assert graph.tables[0].name == 'order items'
    assert [c.title for c in graph.tables[0].columns] == ['id', 'note']


def test_single_word_and_if_not_exists_names_are_untouched():
    sql = ("CREATE TABLE IF NOT EXISTS orders (id int);\n"
           "ALTER TABLE orders ADD CONSTRAINT fk FOREIGN KEY (id) REFERENCES orders (id);\n")
    assert quote_spaced_identifiers(sql) == sql


def test_if_not_exists_with_spaced_name():
    fixed = quote_spaced_identifiers("CREATE TABLE IF NOT EXISTS user accounts (id int);")
    assert fixed == 'CREATE TABLE IF NOT EXISTS "user accounts" (id int);'


def test_comments_and_strings_are_protected():
    sql = ("-- CREATE TABLE my table (\n"
           "CREATE TABLE t (note text DEFAULT 'REFERENCES a b(');\n")
    assert quote_spaced_identifiers(sql) == sql

    protected, saved = protect_literals(sql)
    assert 'my table' not in protected
    assert restore_literals(protected, saved) == sql


def test_missing_commas_are_inserted():
    sql = "CREATE TABLE t (\n  id int PRIMARY KEY -- key\n  name text\n  CONSTRAINT u UNIQUE (name)\n);"
    fixed = insert_missing_commas(sql)
    assert fixed == ("CREATE TABLE t (\n  id int PRIMARY KEY, -- key\n  name text,\n"
                     "  CONSTRAINT u UNIQUE (name)\n);")


def test_commas_are_not_inserted_into_continuation_lines():
    sql = "CREATE TABLE t (\n  id int\n    PRIMARY KEY,\n  created timestamp\n    DEFAULT now()\n);"
    assert insert_missing_commas(sql) == sql


def test_alter_statements_are_not_touched_by_comma_pass():
    sql = "CREATE TABLE t (id int);\nALTER TABLE t\n  ADD COLUMN a int;"
    assert insert_missing_commas(sql) == sql


@pytest.mark.parametrize("sql", [
    FK_SECTION,
    "CREATE TABLE order items (\n  id int\n  name text\n);",
    "CREATE TABLE t (a text DEFAULT 'x y (z');",
    "",
])
def test_normalize_is_idempotent(sql):
    once = normalize_sql(sql)
    assert normalize_sql(once) == once


def test_normalize_fixes_everything_at_once():
    sql = FK_SECTION.replace('CREATE TABLE orders (id int PRIMARY KEY, customer_id int);',
                             'CREATE TABLE orders (\n  id int PRIMARY KEY\n  customer_id int\n);')
    fixed = normalize_sql(sql)
    assert fixed.count('ALTER TABLE') == 1
    assert 'id int PRIMARY KEY,\n' in fixed
    graph, warnings = parse_sql(fixed)
    assert len(graph.foreign_key_edges) == 1
    assert warnings == []
