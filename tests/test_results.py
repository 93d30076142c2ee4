"""
语句分类与查询结果测试
"""

import pytest

from db_access.core.exceptions import BindingError, DBAccessError, ExecutionError
from db_access.core.results import (
    AffectedCount,
    Failure,
    FetchMode,
    LastInsertId,
    Rows,
    StatementKind,
    classify_statement,
    leading_keyword,
    shape_row,
)


class TestClassifyStatement:
    """classify_statement测试类"""

    @pytest.mark.parametrize(
        "text, kind",
        [
            ("SELECT 1", StatementKind.READ),
            ("  \n\tselect * from t", StatementKind.READ),
            ("-- comment\nSELECT 1", StatementKind.READ),
            ("/* hint */ show tables", StatementKind.READ),
            ("(SELECT 1) UNION (SELECT 2)", StatementKind.READ),
            ("WITH x AS (SELECT 1) SELECT * FROM x", StatementKind.READ),
            ("PRAGMA table_info(users)", StatementKind.READ),
            ("insert into t values (1)", StatementKind.INSERT),
            ("UPDATE t SET a = 1", StatementKind.WRITE),
            ("DELETE FROM t", StatementKind.WRITE),
            ("Replace INTO t VALUES (1)", StatementKind.WRITE),
            ("CREATE TABLE t (id INTEGER)", StatementKind.OTHER),
            ("", StatementKind.OTHER),
        ],
    )
    def test_classify(self, text, kind):
        """测试按首个关键字分类"""
        assert classify_statement(text) is kind

    def test_leading_keyword(self):
        """测试首个关键字提取"""
        assert leading_keyword("/* a */ -- b\n  ( select") == "SELECT"
        assert leading_keyword("   ") == ""


class TestResultVariants:
    """带标签结果测试类"""

    def test_rows(self):
        """测试零行结果为空列表"""
        assert Rows().value == []
        assert Rows().ok

    def test_last_insert_id(self):
        """测试主键结果"""
        assert LastInsertId(5).value == 5
        assert LastInsertId().value is None

    def test_affected_count(self):
        """测试受影响行数"""
        assert AffectedCount(3).value == 3

    def test_failure(self):
        """测试失败结果的值为 False"""
        failure = Failure(ExecutionError("boom"))
        assert failure.value is False
        assert not failure.ok


class TestShapeRow:
    """shape_row测试类"""

    def setup_method(self):
        """测试方法 setup"""
        self.row = {"id": 1, "name": "John"}

    def test_mapping(self):
        """测试默认返回字典"""
        assert shape_row(self.row) == {"id": 1, "name": "John"}

    def test_tuple(self):
        """测试返回元组"""
        assert shape_row(self.row, FetchMode.TUPLE) == (1, "John")

    def test_column(self):
        """测试返回指定列"""
        assert shape_row(self.row, FetchMode.COLUMN, 1) == "John"
        assert shape_row(self.row, FetchMode.COLUMN) == 1

    def test_column_out_of_range(self):
        """测试列序号越界"""
        with pytest.raises(BindingError) as exc_info:
            shape_row(self.row, FetchMode.COLUMN, 5)
        assert isinstance(exc_info.value, DBAccessError)
        assert exc_info.value.details["column_count"] == 2
