"""
事务管理测试
"""

import shutil
import tempfile
from pathlib import Path
from unittest import mock

import pytest

from db_access.core.database import DatabaseManager
from db_access.core.exceptions import ExecutionError, TransactionError
from db_access.core.servers import ServerDescriptor
from db_access.core.transactions import IsolationIntent, TransactionOutcome, TransactionState
from db_access.drivers.sqlalchemy_driver import SQLAlchemyHandle

INSERT_ITEM = "INSERT INTO items (name) VALUES (?)"


class TestIsolationIntent:
    """IsolationIntent测试类"""

    def test_from_flag(self):
        """测试隔离级别参数映射"""
        assert IsolationIntent.from_flag(None) is IsolationIntent.NONE
        assert IsolationIntent.from_flag(True).value == "READ COMMITTED"
        assert IsolationIntent.from_flag(False).value == "REPEATABLE READ"


class TestTransactionManager:
    """TransactionManager测试类"""

    def setup_method(self):
        """测试方法 setup"""
        self.test_dir = Path(tempfile.mkdtemp())
        self.server = ServerDescriptor("primary", database=str(self.test_dir / "app.db"))
        self.db = DatabaseManager([self.server])
        self.db.query("CREATE TABLE items (id INTEGER PRIMARY KEY, name VARCHAR(20))")

    def teardown_method(self):
        """测试方法 teardown"""
        self.db.close()
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def _count_from_other_connection(self):
        with DatabaseManager([self.server]) as other:
            return other.query_row("SELECT COUNT(*) AS n FROM items")["n"]

    def test_rollback_while_idle(self):
        """测试空闲状态回滚返回 False 且不调用驱动"""
        handle = self.db.connections.current.handle
        with mock.patch.object(handle, "rollback") as spy:
            assert self.db.rollback_transaction() is False
        spy.assert_not_called()

    def test_rollback_without_connection(self):
        """测试没有连接时回滚不会建立连接"""
        self.db.close()
        assert self.db.rollback_transaction() is False
        assert not self.db.connection_exists()

    def test_commit_while_idle(self):
        """测试空闲状态提交是编程错误"""
        with pytest.raises(TransactionError):
            self.db.commit_transaction()

    def test_no_nesting(self):
        """测试事务不能嵌套"""
        self.db.start_transaction()
        with pytest.raises(TransactionError):
            self.db.start_transaction()
        self.db.rollback_transaction()

    def test_commit(self):
        """测试提交后状态为空闲且数据可见"""
        self.db.start_transaction()
        assert self.db.transactions.state is TransactionState.ACTIVE

        self.db.query(INSERT_ITEM, ["a"])
        self.db.query(INSERT_ITEM, ["b"])
        self.db.commit_transaction()

        assert self.db.transactions.state is TransactionState.IDLE
        assert self.db.transactions.last_outcome is TransactionOutcome.COMMITTED
        assert self._count_from_other_connection() == 2

    def test_rollback(self):
        """测试回滚丢弃事务中的修改"""
        self.db.start_transaction()
        self.db.query(INSERT_ITEM, ["a"])

        assert self.db.rollback_transaction() is True
        assert self.db.transactions.state is TransactionState.IDLE
        assert self.db.query_column("SELECT name FROM items") == []

    def test_uncommitted_changes_not_visible(self):
        """测试未提交的修改对其他连接不可见"""
        self.db.start_transaction()
        self.db.query(INSERT_ITEM, ["a"])
        assert self._count_from_other_connection() == 0
        self.db.commit_transaction()
        assert self._count_from_other_connection() == 1

    def test_get_last_after_commit(self):
        """测试提交后 get_last 返回完整的事务日志"""
        self.db.start_transaction()
        self.db.query(INSERT_ITEM, ["a"])
        self.db.query("UPDATE items SET name = ? WHERE id = ?", ["b", 1])
        self.db.commit_transaction()

        assert self.db.get_last() == (
            "INSERT INTO items (name) VALUES ('a');\n"
            "UPDATE items SET name = 'b' WHERE id = 1;"
        )

    def test_get_last_during_transaction(self):
        """测试事务进行中 get_last 返回已执行的语句"""
        self.db.start_transaction()
        self.db.query(INSERT_ITEM, ["a"])
        assert self.db.get_last() == "INSERT INTO items (name) VALUES ('a');"
        self.db.rollback_transaction()

    def test_get_last_after_next_statement(self):
        """测试事务结束后执行新语句时只返回最近一条"""
        self.db.start_transaction()
        self.db.query(INSERT_ITEM, ["a"])
        self.db.commit_transaction()
        self.db.query("SELECT name FROM items")

        assert self.db.get_last() == "SELECT name FROM items;"

    def test_get_last_without_statements(self):
        """测试没有执行任何语句时返回空字符串"""
        with DatabaseManager([self.server]) as fresh:
            assert fresh.get_last() == ""

    def test_failed_statement_logged(self):
        """测试事务中失败的语句同样记录"""
        self.db.silent_errors(True)
        self.db.start_transaction()
        with pytest.warns(Warning):
            self.db.query("INSERT INTO missing_table VALUES (?)", [1])
        self.db.rollback_transaction()

        assert self.db.get_last() == "INSERT INTO missing_table VALUES (1);"

    def test_isolation_passed_to_driver(self):
        """测试隔离级别意图传递给驱动"""
        handle = self.db.connections.current.handle
        with mock.patch.object(handle, "begin") as begin, mock.patch.object(handle, "commit"):
            self.db.start_transaction(True)
            begin.assert_called_once_with("READ COMMITTED")
            self.db.commit_transaction()

            self.db.start_transaction(False)
            begin.assert_called_with("REPEATABLE READ")
            self.db.commit_transaction()

            self.db.start_transaction()
            begin.assert_called_with(None)
            self.db.commit_transaction()

    def test_unsupported_isolation_falls_back(self):
        """测试方言不支持的隔离级别使用默认值"""
        self.db.start_transaction(True)
        assert self.db.transactions.isolation is IsolationIntent.READ_COMMITTED
        self.db.query(INSERT_ITEM, ["a"])
        self.db.commit_transaction()
        assert self._count_from_other_connection() == 1

    def test_close_discards_active_transaction(self):
        """测试关闭连接时活动事务被丢弃"""
        self.db.start_transaction()
        self.db.query(INSERT_ITEM, ["a"])
        self.db.close()

        assert not self.db.transactions.is_active
        assert self._count_from_other_connection() == 0

    def test_context_manager_commits(self):
        """测试上下文管理器正常退出时提交事务"""
        with DatabaseManager([self.server]) as db:
            db.start_transaction()
            db.query(INSERT_ITEM, ["a"])
        assert self._count_from_other_connection() == 1

    def test_context_manager_rolls_back_on_error(self):
        """测试上下文管理器异常退出时回滚事务"""
        with pytest.raises(RuntimeError):
            with DatabaseManager([self.server]) as db:
                db.start_transaction()
                db.query(INSERT_ITEM, ["a"])
                raise RuntimeError("boom")
        assert self._count_from_other_connection() == 0

    def test_commit_failure_outcome(self):
        """测试驱动提交失败时事务按回滚处理"""
        self.db.start_transaction()
        self.db.query(INSERT_ITEM, ["a"])
        handle = self.db.connections.current.handle
        with mock.patch.object(handle, "commit", side_effect=ExecutionError("提交事务失败")):
            with pytest.raises(ExecutionError):
                self.db.commit_transaction()

        assert self.db.transactions.state is TransactionState.IDLE
        assert self.db.transactions.last_outcome is TransactionOutcome.ROLLED_BACK

    def test_context_manager_closes_when_commit_fails(self):
        """测试上下文管理器提交失败时仍然释放连接"""
        db = DatabaseManager([self.server])
        with mock.patch.object(SQLAlchemyHandle, "commit", side_effect=ExecutionError("提交事务失败")):
            with pytest.raises(ExecutionError):
                with db:
                    db.start_transaction()
                    db.query(INSERT_ITEM, ["a"])

        assert not db.connection_exists()
        assert db.transactions.last_outcome is TransactionOutcome.ROLLED_BACK
        assert self._count_from_other_connection() == 0

    def test_context_manager_closes_when_rollback_fails(self):
        """测试上下文管理器回滚失败时仍然释放连接"""
        db = DatabaseManager([self.server])
        with mock.patch.object(SQLAlchemyHandle, "rollback", side_effect=ExecutionError("回滚事务失败")):
            with pytest.raises(ExecutionError):
                with db:
                    db.start_transaction()
                    raise RuntimeError("boom")

        assert not db.connection_exists()
