"""
Tests for the connection-management adapters and their registry.
"""
import threading
from unittest.mock import MagicMock

import pytest
from que_adapters import AdapterOptions, Statement, transaction
from que_adapters.adapters import Adapter, PGAdapter, PoolAdapter
from que_adapters.adapters import SQLAlchemyAdapter, get_adapter_class
from que_adapters.adapters import get_available_adapters, is_supported_adapter
from que_adapters.adapters import register_adapter
from que_adapters.sql import SQL

from tests.fixtures.connections import FakeConnection, FakePool


@pytest.fixture
def options():
    return AdapterOptions(
        hostname='testhost',
        username='testuser',
        password='testpass',
        database='testdb',
        port=1234,
        timeout=30,
        appname='que_tests',
    )


def _engine_for(*connections):
    """Mock SQLAlchemy engine whose connections wrap the given driver connections."""
    engine = MagicMock()
    sa_connections = []
    for conn in connections:
        sa_connection = MagicMock()
        sa_connection.__enter__.return_value = sa_connection
        sa_connection.connection.driver_connection = conn
        sa_connections.append(sa_connection)
    engine.connect.side_effect = sa_connections
    return engine


def test_registry():
    assert {'pg', 'pool', 'sqlalchemy'} <= set(get_available_adapters())
    assert get_adapter_class('pg') is PGAdapter
    assert get_adapter_class('pool') is PoolAdapter
    assert get_adapter_class('sqlalchemy') is SQLAlchemyAdapter
    assert is_supported_adapter('pool')
    assert not is_supported_adapter('sequel')
    with pytest.raises(ValueError, match='Unsupported adapter: sequel'):
        get_adapter_class('sequel')


def test_register_custom_adapter(mocker):
    mocker.patch.dict('que_adapters.adapters.base._ADAPTER_REGISTRY')

    @register_adapter('custom')
    class CustomAdapter(Adapter):
        pass

    assert get_adapter_class('custom') is CustomAdapter
    assert 'custom' in get_available_adapters()
    with pytest.raises(NotImplementedError):
        CustomAdapter.from_options(None)


def test_pg_checkout_is_reentrant(fake_conn):
    adapter = PGAdapter(fake_conn)
    with adapter.checkout() as outer:
        with adapter.checkout() as inner:
            assert outer is inner is fake_conn


def test_pg_checkout_excludes_other_threads(fake_conn):
    adapter = PGAdapter(fake_conn)
    entered = threading.Event()

    def worker():
        with adapter.checkout():
            entered.set()

    with adapter.checkout():
        thread = threading.Thread(target=worker)
        thread.start()
        assert not entered.wait(0.1)

    thread.join(timeout=5)
    assert entered.is_set()


def test_pg_from_options(options, mocker):
    connect_func = mocker.Mock(return_value=FakeConnection())
    adapter = PGAdapter.from_options(options, connect_func=connect_func)

    assert adapter.connection is connect_func.return_value
    conninfo = connect_func.call_args.args[0]
    for part in ['host=testhost', 'port=1234', 'dbname=testdb', 'user=testuser',
                 'password=testpass', 'connect_timeout=30', 'application_name=que_tests']:
        assert part in conninfo
    assert connect_func.call_args.kwargs == {'autocommit': True}


def test_pg_close_forgets_statements(fake_conn):
    adapter = PGAdapter(fake_conn)
    adapter.prepared_statements.mark_prepared(fake_conn, 'check_job')
    adapter.close()
    assert fake_conn.closed
    assert not adapter.prepared_statements.is_prepared(fake_conn, 'check_job')


def test_pool_nested_checkout_borrows_once():
    pool = FakePool([FakeConnection(), FakeConnection()])
    adapter = PoolAdapter(pool)

    with adapter.checkout() as outer:
        assert adapter.held_connection is outer
        with adapter.checkout() as inner:
            assert inner is outer
            adapter.execute('SELECT 1')
    assert pool.borrowed == 1
    assert adapter.held_connection is None


def test_pool_threads_get_their_own_connection():
    first, second = FakeConnection(), FakeConnection()
    adapter = PoolAdapter(FakePool([first, second]))
    seen = []

    def worker():
        with adapter.checkout() as conn:
            seen.append(conn)

    with adapter.checkout() as conn:
        assert conn is first
        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()
    assert seen == [second]


def test_pool_released_after_error():
    pool = FakePool([FakeConnection()])
    adapter = PoolAdapter(pool)

    with pytest.raises(RuntimeError), adapter.checkout():
        raise RuntimeError('boom')
    assert adapter.held_connection is None
    assert len(pool.idle) == 1


def test_pool_from_options(options, mocker):
    pool_factory = mocker.Mock()
    adapter = PoolAdapter.from_options(options, pool_factory=pool_factory)

    assert adapter.pool is pool_factory.return_value
    kwargs = pool_factory.call_args.kwargs
    assert kwargs['min_size'] == 1
    assert kwargs['max_size'] == 5
    assert kwargs['max_idle'] == 300
    assert kwargs['timeout'] == 30
    assert kwargs['kwargs'] == {'autocommit': True}
    assert kwargs['open'] is True
    assert 'host=testhost' in pool_factory.call_args.args[0]


def test_pool_close(mocker):
    pool = mocker.Mock()
    PoolAdapter(pool).close()
    pool.close.assert_called_once()


def test_sqlalchemy_checkout_uses_driver_connection():
    conn = FakeConnection()
    engine = _engine_for(conn)
    adapter = SQLAlchemyAdapter(engine)

    with adapter.checkout() as outer:
        with adapter.checkout() as inner:
            assert outer is inner is conn
    engine.connect.assert_called_once()
    assert adapter.held_connection is None


def test_sqlalchemy_from_options(options, mocker):
    engine_factory = mocker.Mock()
    adapter = SQLAlchemyAdapter.from_options(options, engine_factory=engine_factory)

    assert adapter.engine is engine_factory.return_value
    assert engine_factory.call_args.args[0].drivername == 'postgresql+psycopg'
    kwargs = engine_factory.call_args.kwargs
    assert kwargs['isolation_level'] == 'AUTOCOMMIT'
    assert kwargs['pool_size'] == 5
    assert adapter.statement_prefix == 'que_'


def test_sqlalchemy_adapters_do_not_share_engines(options):
    """Two adapters from the same options each prepare on their own backend sessions"""
    connections = [FakeConnection(), FakeConnection()]
    engines = [_engine_for(conn) for conn in connections]
    engine_factory = MagicMock(side_effect=engines)

    first = SQLAlchemyAdapter.from_options(options, engine_factory=engine_factory)
    second = SQLAlchemyAdapter.from_options(options, engine_factory=engine_factory)
    assert first.engine is not second.engine

    first.execute(Statement('check_job'), ['', 100, '2024-01-01', 1])
    second.execute(Statement('check_job'), ['', 100, '2024-01-01', 1])

    for conn, adapter in zip(connections, [first, second]):
        assert conn.pgconn.calls_to('prepare') == [
            ('prepare', b'que_check_job', SQL['check_job'].encode())
        ]
        assert adapter.prepared_statements.is_prepared(conn, 'check_job')
    assert not first.prepared_statements.is_prepared(connections[1], 'check_job')


def test_wake_without_callable_or_transaction():
    assert PGAdapter(FakeConnection()).wake_worker_after_commit() is False
    assert PoolAdapter(FakePool([])).wake_worker_after_commit() is False
    assert SQLAlchemyAdapter(MagicMock()).wake_worker_after_commit() is False

    wakeup = MagicMock()
    adapter = SQLAlchemyAdapter(_engine_for(FakeConnection()), wakeup=wakeup)
    assert adapter.wake_worker_after_commit() is False
    wakeup.assert_not_called()


def test_wake_runs_after_commit():
    wakeup = MagicMock()
    adapter = SQLAlchemyAdapter(_engine_for(FakeConnection()), wakeup=wakeup)

    with transaction(adapter):
        assert adapter.wake_worker_after_commit() is True
        wakeup.assert_not_called()
    wakeup.assert_called_once_with()


def test_wake_skipped_on_rollback():
    wakeup = MagicMock()
    adapter = SQLAlchemyAdapter(_engine_for(FakeConnection()), wakeup=wakeup)

    with pytest.raises(ValueError), transaction(adapter):
        assert adapter.wake_worker_after_commit() is True
        raise ValueError('abort')
    wakeup.assert_not_called()


def test_sqlalchemy_close():
    engine = MagicMock()
    SQLAlchemyAdapter(engine).close()
    engine.dispose.assert_called_once()


if __name__ == '__main__':
    __import__('pytest').main([__file__])
