"""
CLI 测试
"""

import io
import json
import shutil
import tempfile
from pathlib import Path

from rich.console import Console

from db_access.cli import create_argument_parser, main


class TestCLI:
    """CLI测试类"""

    def setup_method(self):
        """测试方法 setup"""
        self.test_dir = Path(tempfile.mkdtemp())
        self.config_path = self.test_dir / "database.toml"
        self.config_path.write_text(
            "[database]\n"
            'driver = "sqlite"\n\n'
            "[[database.servers]]\n"
            'host = "local"\n'
            f'database = "{(self.test_dir / "app.db").as_posix()}"\n\n'
            "[logging]\n"
            'level = "INFO"\n'
            "log_to_file = true\n"
            f'log_dir = "{(self.test_dir / "logs").as_posix()}"\n',
            encoding="utf-8",
        )

    def teardown_method(self):
        """测试方法 teardown"""
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def run(self, *argv):
        output = io.StringIO()
        console = Console(file=output, width=200, color_system=None)
        code = main(["--config", str(self.config_path), *argv], console=console)
        return code, output.getvalue()

    def _create_table(self):
        code, _ = self.run("query", "CREATE TABLE users (id INTEGER PRIMARY KEY, name VARCHAR(20))")
        assert code == 0

    def test_parser_commands(self):
        """测试解析器包含所有命令"""
        parser = create_argument_parser()
        args = parser.parse_args(["query", "SELECT 1", "--format", "json", "--param", "1"])
        assert args.handler == "execute_query"
        assert args.format == "json"
        assert args.param == ["1"]

    def test_query_insert_and_select(self):
        """测试插入并以 JSON 输出"""
        self._create_table()

        code, output = self.run("query", "INSERT INTO users (name) VALUES (?)", "--param", '"Ada"')
        assert code == 0
        assert "新主键: 1" in output

        code, output = self.run("query", "SELECT id, name FROM users WHERE id IN (?)", "--param", "[1, 2]", "--format", "json")
        assert code == 0
        assert json.loads(output) == [{"id": 1, "name": "Ada"}]

    def test_query_csv(self):
        """测试 CSV 输出"""
        self._create_table()
        self.run("query", "INSERT INTO users (name) VALUES (?)", "--param", "Bob")

        code, output = self.run("query", "SELECT name FROM users", "--format", "csv")
        assert code == 0
        assert output.splitlines() == ["name", "Bob"]

    def test_query_table(self):
        """测试表格输出"""
        self._create_table()
        self.run("query", "INSERT INTO users (name) VALUES (?)", "--param", "Bob")

        code, output = self.run("query", "SELECT name FROM users")
        assert code == 0
        assert "Bob" in output
        assert "总计: 1 行" in output

    def test_query_update_count(self):
        """测试受影响行数输出"""
        self._create_table()
        code, output = self.run("query", "DELETE FROM users")
        assert code == 0
        assert "受影响行数: 0" in output

    def test_query_failure(self):
        """测试执行失败返回非零退出码"""
        code, output = self.run("query", "SELECT * FROM no_such_table")
        assert code == 1
        assert "ExecutionError" in output

    def test_render(self):
        """测试渲染语句"""
        code, output = self.run("render", "SELECT * FROM users WHERE id IN (?) AND name = ?", "--param", "[1, 2]", "--param", "O'Brien", "--no-warning")
        assert code == 0
        assert output.strip() == "SELECT * FROM users WHERE id IN (1, 2) AND name = 'O''Brien'"

    def test_tables_and_columns(self):
        """测试元数据命令"""
        self._create_table()

        code, output = self.run("tables")
        assert code == 0
        assert "users" in output

        code, output = self.run("columns", "users")
        assert code == 0
        assert "name" in output

        code, output = self.run("columns", "nope")
        assert code == 1

    def test_server_management(self):
        """测试服务器管理命令"""
        code, output = self.run("add-server", "db2", "--username", "app", "--password", "top-secret")
        assert code == 0
        assert "top-secret" not in self.config_path.read_text(encoding="utf-8")

        code, output = self.run("servers")
        assert code == 0
        assert "local" in output
        assert "db2" in output

        code, _ = self.run("remove-server", "db2")
        assert code == 0
        code, _ = self.run("remove-server", "db2")
        assert code == 1

    def test_no_command(self):
        """测试没有命令时输出帮助"""
        assert main([]) == 0
