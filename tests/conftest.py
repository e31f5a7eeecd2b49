import uuid

import pytest
import sqlalchemy as sa

from authz_compiler import AuthorizationStatementCompiler
from authz_compiler import InMemoryMetadataLookup
from authz_compiler import Session

try:
    # psycopg2
    import psycopg2  # noqa: F401

    engine_type = 'postgresql+psycopg2'
except ImportError:
    try:
        # psycopg3
        import psycopg  # noqa: F401

        engine_type = 'postgresql+psycopg'
    except ImportError:
        engine_type = None

engine_future = {'future': True} if tuple(int(v) for v in sa.__version__.split('.')[:3]) < (2, 0, 0) else {}

# The default/root database that comes with the PostgreSQL Docker image
ROOT_DATABASE_NAME = 'postgres'

# We make and drop a database in each test to keep them isolated
TEST_DATABASE_NAME = 'authz_compiler_test'

TEST_USER = 'test_admin_user'

# Owners the in-memory catalog knows about. Anything else raises LookupError.
TEST_TABLE_OWNERS = {'t1': 'table_owner', 'orders': 'sales_owner'}
TEST_DATABASE_OWNERS = {'db1': 'db_owner', 'sales': None}


@pytest.fixture
def metadata():
    return InMemoryMetadataLookup(tables=TEST_TABLE_OWNERS, databases=TEST_DATABASE_OWNERS)


@pytest.fixture
def compiler(metadata):
    return AuthorizationStatementCompiler(metadata=metadata)


@pytest.fixture
def session():
    return Session(user_name=TEST_USER)


@pytest.fixture
def root_engine():
    if engine_type is None:
        pytest.skip('Neither psycopg2 nor psycopg is installed')

    engine = sa.create_engine(
        f'{engine_type}://postgres:postgres@127.0.0.1:5432/{ROOT_DATABASE_NAME}',
        poolclass=sa.pool.NullPool,
        **engine_future,
    )
    try:
        with engine.connect():
            pass
    except sa.exc.OperationalError:
        pytest.skip('No PostgreSQL server on 127.0.0.1:5432')

    yield engine
    engine.dispose()


@pytest.fixture
def owner_roles(root_engine):
    role_names = (f'test_owner_{uuid.uuid4().hex}', f'test_owner_{uuid.uuid4().hex}')

    with root_engine.begin() as conn:
        for role_name in role_names:
            conn.execute(sa.text(f'CREATE ROLE {role_name} NOLOGIN'))

    yield role_names

    with root_engine.begin() as conn:
        for role_name in role_names:
            conn.execute(sa.text(f'DROP ROLE IF EXISTS {role_name}'))


@pytest.fixture
def test_engine(root_engine, owner_roles):
    def drop_database_if_exists(conn):
        conn.execute(
            sa.text(f"""
            SELECT pg_terminate_backend(pg_stat_activity.pid)
            FROM pg_stat_activity
            WHERE pg_stat_activity.datname = '{TEST_DATABASE_NAME}'
            AND pid != pg_backend_pid();
        """),
        )
        conn.execute(sa.text(f'DROP DATABASE IF EXISTS {TEST_DATABASE_NAME}'))

    with root_engine.connect() as conn:
        conn.execution_options(isolation_level='AUTOCOMMIT')
        drop_database_if_exists(conn)
        conn.execute(sa.text(f'CREATE DATABASE {TEST_DATABASE_NAME} OWNER {owner_roles[0]}'))

    # The NullPool prevents default connection pooling, which interfers with dropping the database
    engine = sa.create_engine(
        f'{engine_type}://postgres:postgres@127.0.0.1:5432/{TEST_DATABASE_NAME}',
        poolclass=sa.pool.NullPool,
        **engine_future,
    )
    yield engine
    engine.dispose()

    with root_engine.connect() as conn:
        conn.execution_options(isolation_level='AUTOCOMMIT')
        drop_database_if_exists(conn)


@pytest.fixture
def test_tables(test_engine, owner_roles):
    """Tables `t_dup` in public and in test_other, and `t_only` in test_other, each with its own owner."""
    public_owner, other_owner = owner_roles

    with test_engine.begin() as conn:
        conn.execute(sa.text('CREATE SCHEMA test_other'))
        for schema_name, table_name, owner in (
            ('public', 't_dup', public_owner),
            ('test_other', 't_dup', other_owner),
            ('test_other', 't_only', other_owner),
        ):
            conn.execute(sa.text(f'CREATE TABLE {schema_name}.{table_name} (id int)'))
            conn.execute(sa.text(f'ALTER TABLE {schema_name}.{table_name} OWNER TO {owner}'))

    return public_owner, other_owner


@pytest.fixture
def test_sqlite_engine():
    engine = sa.create_engine('sqlite:///:memory:', **engine_future)
    yield engine
    engine.dispose()
