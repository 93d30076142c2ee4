"""
标识符目录测试
"""

import shutil
import tempfile
from pathlib import Path
from unittest import mock

from db_access.core.catalog import CatalogCache, IdentifierCatalog
from db_access.core.database import DatabaseManager
from db_access.core.servers import ServerDescriptor


class TestIdentifierCatalog:
    """IdentifierCatalog测试类（不依赖数据库）"""

    def setup_method(self):
        """测试方法 setup"""
        self.catalog = IdentifierCatalog(
            ["orders", "users"],
            {
                "orders": [
                    {"name": "order_id", "nullable": False, "autoincrement": True},
                    {"name": "user_id", "nullable": False, "autoincrement": False},
                ],
                "users": [
                    {"name": "user_id", "nullable": False, "autoincrement": True},
                    {"name": "email", "nullable": True, "autoincrement": False},
                ],
            },
        )

    def test_find_table_first(self):
        """测试先匹配表名"""
        assert self.catalog.find("users") == "users"

    def test_find_column(self):
        """测试匹配任意表的列"""
        assert self.catalog.find("email") == "email"

    def test_find_unknown(self):
        """测试未知标识符"""
        assert self.catalog.find("users; DROP TABLE users") is None
        assert self.catalog.find("USERS") is None

    def test_all_columns_unique_in_order(self):
        """测试所有列名去重并保持顺序"""
        assert self.catalog.all_columns == ["order_id", "user_id", "email"]

    def test_table_columns(self):
        """测试列描述"""
        assert self.catalog.table_columns("users") == [
            {"table": "users", "name": "user_id", "nullable": False, "auto_increment": True},
            {"table": "users", "name": "email", "nullable": True, "auto_increment": False},
        ]
        assert len(self.catalog.table_columns()) == 4
        assert self.catalog.table_columns("missing") == []

    def test_load_uses_handle(self):
        """测试通过驱动句柄加载"""
        handle = mock.Mock()
        handle.list_tables.return_value = ["t"]
        handle.list_columns.return_value = [{"name": "c", "nullable": True, "autoincrement": False}]

        catalog = IdentifierCatalog.load(handle)

        handle.list_columns.assert_called_once_with("t")
        assert catalog.find("c") == "c"


class TestCatalogCache:
    """CatalogCache测试类"""

    def test_keyed_by_connection_identity(self):
        """测试按连接标识缓存并在连接释放时失效"""
        connection = mock.Mock(identity=1)
        connection.handle.list_tables.return_value = []
        cache = CatalogCache()

        first = cache.get(connection)
        assert cache.get(connection) is first
        assert connection.handle.list_tables.call_count == 1

        cache.invalidate(connection)
        assert connection not in cache
        assert cache.get(connection) is not first


class TestIdentifierEscaping:
    """标识符校验集成测试类"""

    def setup_method(self):
        """测试方法 setup"""
        self.test_dir = Path(tempfile.mkdtemp())
        server = ServerDescriptor("primary", database=str(self.test_dir / "app.db"))
        self.db = DatabaseManager([server])
        self.db.query(
            "CREATE TABLE users ("
            "user_id INTEGER PRIMARY KEY, "
            "firstname VARCHAR(50) NOT NULL, "
            "lastname VARCHAR(50))"
        )
        self.db.query(
            "CREATE TABLE orders (order_id INTEGER PRIMARY KEY, user_id INTEGER NOT NULL, total NUMERIC)"
        )

    def teardown_method(self):
        """测试方法 teardown"""
        self.db.close()
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_escape_known_identifiers(self):
        """测试已知的表名与列名返回非空字符串"""
        assert self.db.escape_identifier("users") == '"users"'
        assert self.db.escape_identifier("firstname") == '"firstname"'
        assert self.db.escape_identifier("total", quote=False) == "total"

    def test_escape_unknown_identifier(self):
        """测试未知标识符返回空字符串"""
        assert self.db.escape_identifier("users; DROP TABLE users") == ""
        assert self.db.escape_identifier("password") == ""

    def test_escaped_identifier_in_statement(self):
        """测试校验后的标识符可用于拼接语句"""
        column = self.db.escape_identifier("firstname")
        self.db.query("INSERT INTO users (firstname) VALUES (?)", ["John"])
        assert self.db.query_column(f"SELECT {column} FROM users") == ["John"]

    def test_get_tables(self):
        """测试表列表"""
        assert sorted(self.db.get_tables()) == ["orders", "users"]

    def test_get_all_columns(self):
        """测试所有列名去重"""
        columns = self.db.get_all_columns()
        assert sorted(columns) == ["firstname", "lastname", "order_id", "total", "user_id"]
        assert len(columns) == 5

    def test_get_table_columns(self):
        """测试列描述按序号顺序排列"""
        columns = self.db.get_table_columns("users")

        assert [column["name"] for column in columns] == ["user_id", "firstname", "lastname"]
        assert columns[0]["auto_increment"] is True
        assert columns[1]["nullable"] is False
        assert columns[2]["nullable"] is True
        assert columns[1]["auto_increment"] is False

    def test_catalog_cached_for_connection_lifetime(self):
        """测试目录在连接生命周期内缓存，连接替换后重新加载"""
        assert "extra" not in self.db.get_tables()
        self.db.query("CREATE TABLE extra (id INTEGER)")
        assert "extra" not in self.db.get_tables()

        self.db.close()

        assert "extra" in self.db.get_tables()
        assert self.db.escape_identifier("extra") == '"extra"'

    def test_enum_values(self):
        """测试枚举值"""
        assert self.db.enum_values("users", "firstname") == []
        assert self.db.enum_values("missing", "firstname") == []

        handle = self.db.connections.current.handle
        with mock.patch.object(handle, "enum_values", return_value=["a", "b"]) as spy:
            assert self.db.enum_values("users", "lastname") == ["a", "b"]
            assert self.db.enum_values("users", "nope") == []
        spy.assert_called_once_with("users", "lastname")
