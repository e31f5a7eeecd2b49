import pytest
import sqlalchemy as sa

import authz_compiler.adapters.postgres
from authz_compiler.adapters.postgres import PostgresMetadataLookup
from authz_compiler.core import AuthorizationStatementCompiler
from authz_compiler.core import _get_metadata_lookup
from authz_compiler.fragments import Fragment
from authz_compiler.fragments import FragmentType
from authz_compiler.fragments import identifier
from authz_compiler.models import ObjectDescriptor
from authz_compiler.models import ObjectType
from authz_compiler.models import Session

TEST_DATABASE_NAME = 'authz_compiler_test'


def grant_select_on(target_type, name: str) -> Fragment:
    select = Fragment(FragmentType.PRIVILEGE, children=(Fragment(FragmentType.PRIV_SELECT),))
    role = Fragment(FragmentType.ROLE, children=(identifier('r1'),))
    return Fragment(
        FragmentType.GRANT,
        children=(
            Fragment(FragmentType.PRIVILEGE_LIST, children=(select,)),
            Fragment(FragmentType.PRINCIPAL_LIST, children=(role,)),
            Fragment(FragmentType.PRIV_OBJECT, children=(Fragment(target_type, children=(identifier(name),)),)),
        ),
    )


def test_get_metadata_lookup_raises(test_sqlite_engine) -> None:
    with pytest.raises(ValueError, match='Unsupported database dialect: sqlite'):
        _get_metadata_lookup(test_sqlite_engine)


def test_compiler_from_connection_raises(test_sqlite_engine) -> None:
    with test_sqlite_engine.connect() as conn:
        with pytest.raises(ValueError, match='Unsupported database dialect: sqlite'):
            AuthorizationStatementCompiler.from_connection(conn)


@pytest.mark.parametrize('method', ['get_table_owner', 'get_database_owner'])
def test_lookup_without_postgres_catalog_raises(test_sqlite_engine, method: str) -> None:
    with test_sqlite_engine.connect() as conn:
        lookup = PostgresMetadataLookup(conn)
        with pytest.raises(sa.exc.DBAPIError):
            getattr(lookup, method)('t1')


@pytest.mark.parametrize(
    ('target_type', 'expected'),
    [
        (FragmentType.TABLE_TYPE, ObjectDescriptor('t1', ObjectType.TABLE)),
        (FragmentType.DB_TYPE, ObjectDescriptor('t1', ObjectType.DATABASE)),
    ],
)
def test_compiler_ignores_lookup_errors(test_sqlite_engine, target_type, expected: ObjectDescriptor) -> None:
    with test_sqlite_engine.connect() as conn:
        compiler = AuthorizationStatementCompiler(metadata=PostgresMetadataLookup(conn))
        result = compiler.compile(grant_select_on(target_type, 't1'), Session('tun'))

    assert result.ok
    assert result.operation.target == expected


def test_sqlite_connection_usable_after_failed_lookup(test_sqlite_engine) -> None:
    with test_sqlite_engine.connect() as conn:
        compiler = AuthorizationStatementCompiler(metadata=PostgresMetadataLookup(conn))
        assert compiler.compile(grant_select_on(FragmentType.TABLE_TYPE, 't1'), Session('tun')).ok
        assert conn.execute(sa.text('SELECT 1')).scalar() == 1


def test_get_metadata_lookup_postgres(test_engine) -> None:
    with test_engine.connect() as conn:
        assert isinstance(_get_metadata_lookup(conn), PostgresMetadataLookup)


def test_get_table_owner(test_engine, test_tables) -> None:
    public_owner, other_owner = test_tables

    with test_engine.connect() as conn:
        lookup = PostgresMetadataLookup(conn)
        # The table on the search path wins over the same name in another schema
        assert lookup.get_table_owner('t_dup') == public_owner
        assert lookup.get_table_owner('t_only') == other_owner


def test_get_database_owner(test_engine, owner_roles) -> None:
    with test_engine.connect() as conn:
        lookup = PostgresMetadataLookup(conn)
        assert lookup.get_database_owner(TEST_DATABASE_NAME) == owner_roles[0]
        assert lookup.get_database_owner('postgres') == 'postgres'


@pytest.mark.parametrize(
    ('method', 'name', 'message'),
    [
        ('get_table_owner', 'no_such_table', 'Table not found: no_such_table'),
        ('get_database_owner', 'no_such_database', 'Database not found: no_such_database'),
    ],
)
def test_lookup_missing_object_raises(test_engine, test_tables, method: str, name: str, message: str) -> None:
    with test_engine.connect() as conn:
        lookup = PostgresMetadataLookup(conn)
        with pytest.raises(LookupError, match=message):
            getattr(lookup, method)(name)

        # A missing object leaves the transaction usable
        assert conn.execute(sa.text('SELECT 1')).scalar() == 1


def test_compiler_from_connection_resolves_owners(test_engine, test_tables) -> None:
    public_owner, other_owner = test_tables

    with test_engine.connect() as conn:
        compiler = AuthorizationStatementCompiler.from_connection(conn)
        table_target = compiler.compile(grant_select_on(FragmentType.TABLE_TYPE, 'test_other.t_only'), Session('tun'))
        missing_target = compiler.compile(grant_select_on(FragmentType.TABLE_TYPE, 'no_such_table'), Session('tun'))
        database_target = compiler.compile(grant_select_on(FragmentType.DB_TYPE, TEST_DATABASE_NAME), Session('tun'))

    assert table_target.operation.target == ObjectDescriptor('t_only', ObjectType.TABLE, owner=other_owner)
    assert missing_target.operation.target == ObjectDescriptor('no_such_table', ObjectType.TABLE)
    assert database_target.operation.target == ObjectDescriptor(TEST_DATABASE_NAME, ObjectType.DATABASE, owner=public_owner)


def test_failed_lookup_does_not_abort_transaction(test_engine, test_tables, monkeypatch) -> None:
    public_owner, _ = test_tables
    monkeypatch.setattr(
        authz_compiler.adapters.postgres,
        '_TABLE_OWNER_SQL',
        sa.text('SELECT no_such_column FROM pg_tables WHERE tablename = :table_name'),
    )

    with test_engine.connect() as conn:
        compiler = AuthorizationStatementCompiler.from_connection(conn)
        table_result = compiler.compile(grant_select_on(FragmentType.TABLE_TYPE, 't_dup'), Session('tun'))
        database_result = compiler.compile(grant_select_on(FragmentType.DB_TYPE, TEST_DATABASE_NAME), Session('tun'))

        assert conn.execute(sa.text('SELECT 1')).scalar() == 1

    assert table_result.operation.target.owner is None
    assert database_result.operation.target.owner == public_owner
