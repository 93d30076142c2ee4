"""
服务器描述与服务器池测试
"""

import random
from collections import Counter

from db_access.core.servers import ServerDescriptor, ServerPool


class TestServerDescriptor:
    """ServerDescriptor测试类"""

    def test_from_dict(self):
        """测试从配置字典创建"""
        server = ServerDescriptor.from_dict(
            {"host": "db1", "username": "app", "password": "secret", "database": "shop"}
        )
        assert server == ServerDescriptor("db1", "app", "secret", "shop")

    def test_from_dict_defaults(self):
        """测试缺省字段"""
        server = ServerDescriptor.from_dict({"host": "db1"})
        assert server.username == ""
        assert server.database == ""

    def test_repr_hides_password(self):
        """测试字符串表示不包含密码"""
        server = ServerDescriptor("db1", "app", "top-secret", "shop")
        assert "top-secret" not in repr(server)
        assert "db1" in repr(server)


class TestServerPool:
    """ServerPool测试类"""

    def setup_method(self):
        """测试方法 setup"""
        self.servers = [ServerDescriptor(f"db{i}") for i in range(8)]

    def test_keeps_order(self):
        """测试保持给定顺序"""
        pool = ServerPool(self.servers)
        assert pool.hosts == [f"db{i}" for i in range(8)]
        assert len(pool) == 8

    def test_load_balance_is_permutation(self):
        """测试负载均衡只改变顺序，不改变服务器集合"""
        pool = ServerPool(self.servers, rng=random.Random(7))
        for _ in range(20):
            pool.load_balance()
            assert Counter(pool.servers) == Counter(self.servers)

    def test_load_balance_changes_order(self):
        """测试负载均衡会打乱顺序"""
        pool = ServerPool(self.servers, rng=random.Random(3))
        orders = set()
        for _ in range(20):
            pool.load_balance()
            orders.add(tuple(pool.hosts))
        assert len(orders) > 1

    def test_servers_returns_copy(self):
        """测试返回副本，外部修改不影响服务器池"""
        pool = ServerPool(self.servers)
        pool.servers.clear()
        assert len(pool) == 8
