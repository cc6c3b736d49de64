import pytest

from schema_sync.core import ApplyError, ParseError, Position, TableColor, TokenizeError, parse_sql
from schema_sync.core.reconciler import grid_position


def columns_of(graph, table_name):
    return {c.title: c for c in graph.get_table(table_name).columns}


def test_quoted_table_with_inline_constraints():
    graph, warnings = parse_sql(
        'CREATE TABLE IF NOT EXISTS "Users" (id uuid PRIMARY KEY, email varchar(255) UNIQUE NOT NULL);')

    assert warnings == []
    assert len(graph.tables) == 1
    table = graph.tables[0]
    assert table.name == 'Users', "Quoted names keep their case"
    assert [c.title for c in table.columns] == ['id', 'email']

    id_col, email = table.columns
    assert id_col.type == 'uuid'
    assert id_col.constraints == ['primary']
    assert email.type == 'varchar'
    assert email.params == ['255']
    assert email.full_type == 'varchar(255)'
    assert sorted(email.constraints) == ['notnull', 'unique']


def test_enum_type_and_link_edge():
    graph, _ = parse_sql("CREATE TYPE status AS ENUM ('active','inactive'); CREATE TABLE t (s status);")

    assert len(graph.enums) == 1
    enum = graph.enums[0]
    assert enum.name == 'status'
    assert enum.values == ['active', 'inactive']

    column = graph.tables[0].columns[0]
    assert column.type == 'enum_status'
    assert column.enum_name == 'status'

    assert len(graph.edges) == 1
    edge = graph.edges[0]
    assert edge.enum_link
    assert edge.source == enum.id
    assert edge.target == graph.tables[0].id
    assert edge.target_column == 's'
    assert edge.cardinality == 'oneToMany'


def test_enum_prefixed_type_name_resolves():
    graph, _ = parse_sql("CREATE TYPE mood AS ENUM ('ok'); CREATE TABLE t (m enum_mood);")
    assert graph.tables[0].columns[0].type == 'enum_mood'
    assert len(graph.enum_edges) == 1


def test_blog_schema(blog_sql):
    graph, warnings = parse_sql(blog_sql)
    assert warnings == []
    assert [t.name for t in graph.tables] == ['users', 'posts']

    users = columns_of(graph, 'users')
    assert users['id'].type == 'integer', "serial folds into integer"
    assert users['id'].constraints == ['primary']

    posts = columns_of(graph, 'posts')
    fk = posts['user_id'].foreign_key
    assert (fk.table, fk.column, fk.on_delete) == ('users', 'id', 'CASCADE')
    assert fk.resolved
    assert posts['status'].type == 'enum_post_status'
    assert posts['status'].default == 'draft'

    assert len(graph.foreign_key_edges) == 1
    edge = graph.foreign_key_edges[0]
    assert edge.source == graph.get_table('posts').id
    assert edge.target == graph.get_table('users').id
    assert edge.source_handle == 'source-user_id'
    assert edge.target_handle == 'target-id'
    assert edge.cardinality == 'manyToOne'
    assert edge.on_delete == 'CASCADE'
    assert edge.label == 'references'
    assert edge.animated is True

    enum_edge = graph.enum_edges[0]
    assert enum_edge.label is None
    assert enum_edge.animated is False


def test_multi_word_and_aliased_types():
    graph, _ = parse_sql(
        "CREATE TABLE t (a character varying(20), b timestamp with time zone, "
        "c double precision, d int8, e text[], f bool, g int unsigned);")
    cols = columns_of(graph, 't')
    assert (cols['a'].type, cols['a'].params) == ('varchar', ['20'])
    assert cols['b'].type == 'timestamptz'
    assert cols['c'].type == 'double precision'
    assert cols['d'].type == 'bigint'
    assert cols['e'].type == 'text[]'
    assert cols['f'].type == 'boolean'
    assert cols['g'].type == 'integer'


def test_default_expressions():
    graph, _ = parse_sql(
        "CREATE TABLE t (a int DEFAULT 0 NOT NULL, b timestamp DEFAULT now(), "
        "c text DEFAULT 'hi', d text DEFAULT NULL, e numeric DEFAULT -1.5, "
        "f int CHECK (f > 0) NOT NULL);")
    cols = columns_of(graph, 't')
    assert cols['a'].default == '0'
    assert cols['a'].constraints == ['notnull']
    assert cols['b'].default == 'now()'
    assert cols['c'].default == 'hi', "String defaults are stored unquoted"
    assert cols['d'].default is None
    assert cols['e'].default == '-1.5'
    assert cols['f'].constraints == ['notnull']


def test_columns_named_like_index_keywords():
    graph, warnings = parse_sql("""
        CREATE TYPE status AS ENUM ('on', 'off');
        CREATE TABLE t (
          id int PRIMARY KEY,
          key status,
          index citext,
          unique varchar(10) NOT NULL,
          KEY idx_t_key (key),
          UNIQUE (index)
        );
    """)
    cols = columns_of(graph, 't')
    assert list(cols) == ['id', 'key', 'index', 'unique'], warnings
    assert cols['key'].type == 'enum_status'
    assert cols['key'].constraints == ['index']
    assert cols['index'].type == 'citext'
    assert cols['index'].constraints == ['unique']
    assert cols['unique'].params == ['10']
    assert warnings == []


def test_table_level_constraints():
    graph, _ = parse_sql("""
        CREATE TABLE a (id int, code text, PRIMARY KEY (id), UNIQUE (code));
        CREATE TABLE b (
          a_id int,
          a_code text,
          CONSTRAINT fk_b_a FOREIGN KEY (a_id) REFERENCES a(id) ON UPDATE CASCADE,
          UNIQUE (a_id, a_code)
        );
    """)
    a = columns_of(graph, 'a')
    assert a['id'].constraints == ['primary']
    assert a['code'].constraints == ['unique']

    b = columns_of(graph, 'b')
    assert b['a_id'].foreign_key.table == 'a'
    assert b['a_id'].foreign_key.on_update == 'CASCADE'
    assert b['a_id'].constraints == [], "Multi-column UNIQUE marks no single column"
    assert len(graph.foreign_key_edges) == 1


def test_composite_foreign_key_pairs_columns():
    graph, _ = parse_sql("""
        CREATE TABLE parent (x int, y int, PRIMARY KEY (x, y));
        CREATE TABLE child (px int, py int, FOREIGN KEY (px, py) REFERENCES parent (x, y));
    """)
    child = columns_of(graph, 'child')
    assert child['px'].foreign_key.column == 'x'
    assert child['py'].foreign_key.column == 'y'
    assert len(graph.foreign_key_edges) == 2


def test_mysql_flavoured_table():
    graph, warnings = parse_sql("""
        CREATE TABLE `orders` (
          `id` int unsigned NOT NULL AUTO_INCREMENT,
          `state` ENUM('new','paid') NOT NULL DEFAULT 'new',
          `total` decimal(10,2),
          PRIMARY KEY (`id`),
          KEY `idx_total` (`total`)
        ) ENGINE=InnoDB;
    """)
    assert warnings == []
    cols = columns_of(graph, 'orders')
    assert cols['id'].type == 'integer'
    assert sorted(cols['id'].constraints) == ['notnull', 'primary']
    assert cols['total'].constraints == ['index']
    assert cols['total'].params == ['10', '2']

    assert [e.name for e in graph.enums] == ['orders_state']
    assert graph.enums[0].values == ['new', 'paid']
    assert cols['state'].type == 'enum_orders_state'
    assert cols['state'].default == 'new'
    assert len(graph.enum_edges) == 1


def test_create_index_statements():
    graph, _ = parse_sql("""
        CREATE TABLE t (a int, b int);
        CREATE UNIQUE INDEX ux_t_a ON t (a);
        CREATE INDEX ix_t_b ON t USING btree (b);
    """)
    cols = columns_of(graph, 't')
    assert cols['a'].constraints == ['unique']
    assert cols['b'].constraints == ['index']


def test_alter_table_foreign_key_and_column():
    graph, warnings = parse_sql("""
        CREATE TABLE authors (id int PRIMARY KEY);
        CREATE TABLE books (id int PRIMARY KEY, author_id int);
        ALTER TABLE books ADD CONSTRAINT fk_books_author
            FOREIGN KEY (author_id) REFERENCES authors(id) ON DELETE SET NULL;
        ALTER TABLE books ADD COLUMN isbn varchar(13) UNIQUE;
    """)
    assert warnings == []
    books = columns_of(graph, 'books')
    assert list(books) == ['id', 'author_id', 'isbn']
    assert books['isbn'].constraints == ['unique']
    assert books['author_id'].foreign_key.on_delete == 'SET NULL'
    assert len(graph.foreign_key_edges) == 1


def test_forward_reference_and_default_target_column():
    graph, warnings = parse_sql("""
        CREATE TABLE posts (id int PRIMARY KEY, author int REFERENCES people);
        CREATE TABLE people (person_id int PRIMARY KEY);
    """)
    assert warnings == []
    fk = columns_of(graph, 'posts')['author'].foreign_key
    assert (fk.table, fk.column) == ('people', 'person_id'), "Missing column falls back to the primary key"


def test_unresolved_foreign_key_is_kept_with_warning():
    graph, warnings = parse_sql("CREATE TABLE a (id int PRIMARY KEY, g_id int REFERENCES ghosts(gid));")
    fk = columns_of(graph, 'a')['g_id'].foreign_key
    assert fk.table == 'ghosts'
    assert fk.resolved is False
    assert graph.edges == []
    assert any('ghosts' in w for w in warnings)


def test_alter_on_unknown_table_is_skipped():
    graph, warnings = parse_sql("""
        CREATE TABLE a (id int);
        ALTER TABLE missing ADD CONSTRAINT fk FOREIGN KEY (x) REFERENCES a(id);
    """)
    assert len(graph.tables) == 1
    assert any('missing' in w for w in warnings)


def test_duplicate_column_is_renamed():
    graph, warnings = parse_sql("CREATE TABLE t (a int, a text);")
    assert [c.title for c in graph.tables[0].columns] == ['a', 'a_1']
    assert any('renamed' in w for w in warnings)


def test_duplicate_table_is_ignored():
    graph, warnings = parse_sql("CREATE TABLE t (a int); CREATE TABLE T (b int);")
    assert len(graph.tables) == 1
    assert [c.title for c in graph.tables[0].columns] == ['a']
    assert any('Duplicate table' in w for w in warnings)


def test_unsupported_statements_are_ignored():
    graph, warnings = parse_sql("""
        SET search_path = public;
        CREATE EXTENSION IF NOT EXISTS pgcrypto;
        CREATE TABLE t (id int);
        INSERT INTO t VALUES (1);
    """)
    assert [t.name for t in graph.tables] == ['t']
    assert warnings == []


def test_schema_qualified_names():
    graph, _ = parse_sql("""
        CREATE TABLE public.a (id int PRIMARY KEY);
        CREATE TABLE public.b (a_id int REFERENCES public.a(id));
    """)
    assert [t.name for t in graph.tables] == ['a', 'b']
    assert len(graph.foreign_key_edges) == 1


def test_malformed_create_table_raises_parse_error():
    with pytest.raises(ParseError) as excinfo:
        parse_sql("CREATE TABLE broken")
    assert "invalid" in str(excinfo.value)


def test_no_tables_raises_apply_error():
    with pytest.raises(ApplyError):
        parse_sql("SELECT 1;")
    with pytest.raises(ApplyError):
        parse_sql("CREATE TABLE empty ();")


def test_unterminated_literal_raises():
    with pytest.raises(TokenizeError):
        parse_sql("CREATE TABLE t (name text DEFAULT 'x);")


def test_identity_is_preserved_across_reparse(blog_sql):
    first, _ = parse_sql(blog_sql)
    users = first.get_table('users')
    users.position = Position(640, 20)
    users.color = TableColor.from_base('#ff0000')
    first.foreign_key_edges[0].label = 'writes'
    before = first.to_dict()

    edited = blog_sql.replace('name text', 'name text,\n  bio text') + \
        "\nCREATE TABLE comments (id serial PRIMARY KEY, post_id int REFERENCES posts(id));\n"
    second, _ = parse_sql(edited, previous=first)

    assert first.to_dict() == before, "The previous graph must not be mutated"

    new_users = second.get_table('users')
    assert new_users.id == users.id
    assert new_users.position == Position(640, 20)
    assert new_users.color == users.color
    assert [c.title for c in new_users.columns] == ['id', 'email', 'name', 'bio']

    assert second.get_enum('post_status').id == first.get_enum('post_status').id
    assert second.get_table('comments').position == grid_position(2)

    old_edge_ids = {e.id for e in first.edges}
    assert old_edge_ids <= {e.id for e in second.edges}
    kept = next(e for e in second.foreign_key_edges if e.id == first.foreign_key_edges[0].id)
    assert kept.label == 'writes', "Edge styling is inherited from the previous graph"


def test_parse_is_deterministic(blog_sql):
    first, _ = parse_sql(blog_sql)
    second, _ = parse_sql(blog_sql)
    assert first.to_dict() == second.to_dict()
