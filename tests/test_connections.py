"""
连接管理与故障转移测试

不可达服务器使用位于不存在目录中的 SQLite 数据库文件，
由真实的 SQLAlchemy 驱动报告连接失败。
"""

import random
import shutil
import tempfile
from pathlib import Path
from unittest import mock

import pytest

from db_access.core.connections import ConnectionManager
from db_access.core.exceptions import ConnectionError
from db_access.core.servers import ServerDescriptor, ServerPool
from db_access.drivers.sqlalchemy_driver import SQLAlchemyDriver


class TestConnectionManager:
    """ConnectionManager测试类"""

    def setup_method(self):
        """测试方法 setup"""
        self.test_dir = Path(tempfile.mkdtemp())
        self.driver = SQLAlchemyDriver("sqlite")
        self.good = ServerDescriptor("good", database=str(self.test_dir / "good.db"))
        self.other = ServerDescriptor("other", database=str(self.test_dir / "other.db"))
        self.bad1 = ServerDescriptor("bad1", database=str(self.test_dir / "missing" / "a.db"))
        self.bad2 = ServerDescriptor("bad2", database=str(self.test_dir / "missing" / "b.db"))
        self.managers = []

    def teardown_method(self):
        """测试方法 teardown"""
        for manager in self.managers:
            manager.close()
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def _manager(self, servers, **kwargs):
        manager = ConnectionManager(self.driver, servers, **kwargs)
        self.managers.append(manager)
        return manager

    def test_first_reachable_server_wins(self):
        """测试使用当前顺序中第一个可达的服务器"""
        manager = self._manager([self.bad1, self.good, self.other])
        connection = manager.connect()

        assert connection.host == "good"
        assert manager.get_host() == "good"
        assert manager.get_database_name() == self.good.database
        assert manager.connection_exists()

    def test_all_unreachable(self):
        """测试所有服务器不可达时报告全部已尝试的主机"""
        manager = self._manager([self.bad1, self.bad2])

        with pytest.raises(ConnectionError) as exc_info:
            manager.connect()

        assert exc_info.value.attempted_hosts == ["bad1", "bad2"]
        assert exc_info.value.details["attempted_hosts"] == ["bad1", "bad2"]
        assert not manager.connection_exists()

    def test_empty_pool(self):
        """测试服务器池为空"""
        manager = self._manager([])
        with pytest.raises(ConnectionError):
            manager.connect()

    def test_get_connection_reuses_active(self):
        """测试已有连接时不会重新连接"""
        manager = self._manager([self.good])
        first = manager.get_connection()
        assert manager.get_connection() is first

    def test_close_resets_metadata(self):
        """测试关闭后返回无连接的哨兵值"""
        manager = self._manager([self.good])
        manager.connect()
        manager.close()

        assert not manager.connection_exists()
        assert manager.get_host() == "No Connection"
        assert manager.get_database_name() == ""

    def test_close_without_connection(self):
        """测试没有连接时关闭不报错"""
        manager = self._manager([self.good])
        manager.close()
        assert manager.get_host() == "No Connection"

    def test_release_listener(self):
        """测试连接关闭时通知监听器"""
        manager = self._manager([self.good])
        listener = mock.Mock()
        manager.add_release_listener(listener)

        connection = manager.connect()
        manager.close()

        listener.assert_called_once_with(connection)

    def test_load_balance_does_not_reconnect(self):
        """测试负载均衡不影响活动连接"""
        manager = self._manager(ServerPool([self.good, self.other], rng=random.Random(1)))
        connection = manager.connect()

        for _ in range(10):
            manager.load_balance()

        assert manager.current is connection
        assert sorted(manager.pool.hosts) == ["good", "other"]

    def test_load_balance_affects_next_connect(self):
        """测试负载均衡后的下一次连接使用新顺序"""
        manager = self._manager(ServerPool([self.good, self.other], rng=random.Random(5)))
        manager.load_balance()
        expected = manager.pool.hosts[0]

        assert manager.connect().host == expected

    def test_persistent_toggle_same_value_is_noop(self):
        """测试持久化模式不变时不重连"""
        manager = self._manager([self.good])
        connection = manager.connect()

        manager.set_persistent_connection(False)

        assert manager.current is connection

    def test_persistent_toggle_reconnects(self):
        """测试切换持久化模式时关闭旧连接并重新连接"""
        manager = self._manager([self.good])
        old = manager.connect()

        manager.set_persistent_connection(True)

        assert old.closed
        assert manager.current is not old
        assert manager.current.is_persistent
        assert manager.is_persistent

    def test_persistent_toggle_without_connection_connects(self):
        """测试没有连接时切换持久化模式同样建立连接"""
        manager = self._manager([self.good])
        manager.set_persistent_connection(True)
        assert manager.connection_exists()

    def test_silent_errors_without_connection_is_noop(self):
        """测试没有连接时设置静默错误模式不会被保留"""
        manager = self._manager([self.good])
        manager.silent_errors(True)

        assert manager.connect().silent_errors is False

    def test_silent_errors_is_connection_scoped(self):
        """测试静默错误模式不跨连接保留"""
        manager = self._manager([self.good])
        manager.connect()
        manager.silent_errors(True)
        assert manager.current.silent_errors is True

        manager.connect()
        assert manager.current.silent_errors is False

    def test_silent_errors_default(self):
        """测试配置的默认静默错误模式应用于每个新连接"""
        manager = self._manager([self.good], silent_errors_default=True)
        assert manager.connect().silent_errors is True
        manager.silent_errors(False)
        assert manager.connect().silent_errors is True

    def test_connection_identity_changes(self):
        """测试每次连接的标识不同"""
        manager = self._manager([self.good])
        first = manager.connect().identity
        second = manager.connect().identity
        assert first != second
