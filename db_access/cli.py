"""
DB Access CLI 工具
==================

通过命令行使用配置文件中的候选服务器执行查询、查看元数据与管理服务器。

使用示例:
    db-access add-server db1 --username app --password secret --database app
    db-access servers
    db-access query "SELECT * FROM users WHERE user_id IN (?)" --param "[1, 2, 3]"
    db-access render "SELECT * FROM users WHERE name = ?" --param "'John'"
    db-access columns users
"""

import argparse
import csv
import io
import json
import sys
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .core.config import ConfigManager
from .core.database import DatabaseManager
from .core.exceptions import DBAccessError
from .core.results import AffectedCount, Failure, LastInsertId, Rows
from .core.servers import ServerDescriptor
from .utils.logging_utils import get_logger, setup_logging_from_config

logger = get_logger(__name__)

OUTPUT_FORMATS = ("table", "json", "csv")


class DBAccessCLI:
    """
    DB Access 命令行接口主类

    Attributes:
        console (Console): rich 控制台
        config_path (Optional[str]): 配置文件路径，为None时使用用户配置目录
    """

    def __init__(self, console: Optional[Console] = None, config_path: Optional[str] = None) -> None:
        self.console = console or Console()
        self.config_path = config_path
        self._config: Optional[ConfigManager] = None

    @property
    def config(self) -> ConfigManager:
        if self._config is None:
            if self.config_path:
                self._config = ConfigManager.from_file(self.config_path)
            else:
                self._config = ConfigManager()
        return self._config

    def setup_logging(self) -> None:
        logging_scope = self.config.get("logging")
        if logging_scope is not None:
            setup_logging_from_config(logging_scope)

    def _open_database(self, args: argparse.Namespace) -> DatabaseManager:
        db = DatabaseManager.from_config(self.config)
        if getattr(args, "silent", False):
            db.connect()
            db.silent_errors(True)
        return db

    # ------------------------------------------------------------------
    # 查询命令
    # ------------------------------------------------------------------

    def execute_query(self, args: argparse.Namespace) -> int:
        params = self._parse_params(args.param)
        with self._open_database(args) as db:
            outcome = db.execute(args.sql, params)

            if isinstance(outcome, Rows):
                self._display_results(outcome.rows, args.format)
            elif isinstance(outcome, LastInsertId):
                self.console.print(f"✅ 插入成功，新主键: {outcome.id}")
            elif isinstance(outcome, AffectedCount):
                self.console.print(f"✅ 执行成功，受影响行数: {outcome.count}")
            elif isinstance(outcome, Failure):
                self.console.print(f"❌ [bold red]执行失败[/bold red]: {escape(outcome.error.message)}")
                return 1
        return 0

    def render_query(self, args: argparse.Namespace) -> int:
        params = self._parse_params(args.param)
        db = DatabaseManager.from_config(self.config)
        rendered = db.query_return(args.sql, params, suppress_warning=args.no_warning)
        self.console.print(rendered, markup=False, highlight=False, emoji=False, soft_wrap=True)
        return 0

    def list_tables(self, args: argparse.Namespace) -> int:
        with self._open_database(args) as db:
            tables = db.get_tables()
            host = db.get_host()

        table = Table(title=f"📋 数据表 ({host})", show_header=True, header_style="bold magenta")
        table.add_column("序号", style="cyan", justify="center")
        table.add_column("表名", style="magenta")
        for index, name in enumerate(tables, 1):
            table.add_row(str(index), name)
        self.console.print(table)
        self.console.print(f"📊 总共 {len(tables)} 个表")
        return 0

    def list_columns(self, args: argparse.Namespace) -> int:
        with self._open_database(args) as db:
            if args.table and not db.escape_identifier(args.table, quote=False):
                self.console.print(f"❌ 未知的表: {args.table}")
                return 1
            columns = db.get_table_columns(args.table)

        table = Table(title="📋 列信息", show_header=True, header_style="bold magenta")
        table.add_column("表", style="cyan")
        table.add_column("列", style="magenta")
        table.add_column("可空", justify="center")
        table.add_column("自增主键", justify="center")
        for column in columns:
            table.add_row(
                column["table"],
                column["name"],
                "✅" if column["nullable"] else "",
                "✅" if column["auto_increment"] else "",
            )
        self.console.print(table)
        return 0

    # ------------------------------------------------------------------
    # 服务器管理命令
    # ------------------------------------------------------------------

    def list_servers(self, args: argparse.Namespace) -> int:
        servers = self.config.get_servers()
        if not servers:
            self.console.print("没有配置任何服务器")
            return 0

        table = Table(title="📋 候选服务器（按故障转移顺序）", show_header=True, header_style="bold magenta")
        table.add_column("序号", style="cyan", justify="center")
        table.add_column("主机", style="magenta")
        table.add_column("用户名")
        table.add_column("数据库")
        for index, server in enumerate(servers, 1):
            table.add_row(str(index), server.host, server.username, server.database)
        self.console.print(table)
        return 0

    def add_server(self, args: argparse.Namespace) -> int:
        server = ServerDescriptor(
            host=args.host,
            username=args.username or "",
            password=args.password or "",
            database=args.database or "",
        )
        self.config.add_server(server)
        self.console.print(f"✅ [bold green]服务器已保存[/bold green]: {server.host}")
        return 0

    def remove_server(self, args: argparse.Namespace) -> int:
        if not self.config.remove_server(args.host):
            self.console.print(f"❌ 服务器不存在: {args.host}")
            return 1
        self.console.print(f"✅ 服务器已删除: {args.host}")
        return 0

    # ------------------------------------------------------------------
    # 输出
    # ------------------------------------------------------------------

    def _parse_params(self, raw_params: Optional[Sequence[str]]) -> List[Any]:
        """将 --param 的值按 JSON 解析，无法解析的按字符串处理"""
        params = []
        for raw in raw_params or []:
            try:
                params.append(json.loads(raw))
            except json.JSONDecodeError:
                params.append(raw.strip("'"))
        return params

    def _display_results(self, rows: List[Dict[str, Any]], format: str = "table") -> None:
        if format == "json":
            text = json.dumps(rows, indent=2, ensure_ascii=False, default=str)
            self.console.print(text, markup=False, highlight=False, emoji=False, soft_wrap=True)
            return
        if not rows:
            self.console.print("没有结果")
            return
        if format == "csv":
            buffer = io.StringIO()
            writer = csv.DictWriter(buffer, fieldnames=list(rows[0].keys()), lineterminator="\n")
            writer.writeheader()
            writer.writerows(rows)
            self.console.print(buffer.getvalue().rstrip("\n"), markup=False, highlight=False, emoji=False, soft_wrap=True)
            return

        table = Table(show_header=True, header_style="bold magenta")
        for header in rows[0].keys():
            table.add_column(str(header))
        for row in rows:
            table.add_row(*("" if value is None else str(value) for value in row.values()))
        self.console.print(table)
        self.console.print(f"总计: {len(rows)} 行")


def create_argument_parser() -> argparse.ArgumentParser:
    """
    创建命令行参数解析器

    Returns:
        argparse.ArgumentParser: 配置好的参数解析器
    """
    parser = argparse.ArgumentParser(
        prog="db-access",
        description="DB Access - 带故障转移的数据库访问工具",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
使用示例:
  db-access add-server db1 --username app --password secret --database app
  db-access query "SELECT * FROM users WHERE user_id IN (?)" --param "[1, 2, 3]"
  db-access tables
        """,
    )
    parser.add_argument("--config", help="配置文件路径（默认为用户配置目录下的 database.toml）")

    subparsers = parser.add_subparsers(title="可用命令", dest="command")

    query_parser = subparsers.add_parser("query", help="执行SQL语句")
    query_parser.add_argument("sql", help="SQL语句，使用 ? 作为占位符")
    query_parser.add_argument("--param", action="append", help="绑定参数（JSON值），可重复")
    query_parser.add_argument("--format", choices=OUTPUT_FORMATS, default="table", help="输出格式")
    query_parser.add_argument("--silent", action="store_true", help="静默错误模式")
    query_parser.set_defaults(handler="execute_query")

    render_parser = subparsers.add_parser("render", help="显示代入参数后的语句（不执行）")
    render_parser.add_argument("sql", help="SQL语句")
    render_parser.add_argument("--param", action="append", help="绑定参数（JSON值），可重复")
    render_parser.add_argument("--no-warning", action="store_true", help="不输出警告行")
    render_parser.set_defaults(handler="render_query")

    tables_parser = subparsers.add_parser("tables", help="列出所有表")
    tables_parser.set_defaults(handler="list_tables")

    columns_parser = subparsers.add_parser("columns", help="列出表的列")
    columns_parser.add_argument("table", nargs="?", help="表名，省略时列出所有表的列")
    columns_parser.set_defaults(handler="list_columns")

    servers_parser = subparsers.add_parser("servers", help="列出候选服务器")
    servers_parser.set_defaults(handler="list_servers")

    add_parser = subparsers.add_parser("add-server", help="添加或更新候选服务器")
    add_parser.add_argument("host", help="服务器主机")
    add_parser.add_argument("--username", help="用户名")
    add_parser.add_argument("--password", help="密码（加密保存）")
    add_parser.add_argument("--database", help="数据库名（SQLite 为文件路径）")
    add_parser.set_defaults(handler="add_server")

    remove_parser = subparsers.add_parser("remove-server", help="删除候选服务器")
    remove_parser.add_argument("host", help="服务器主机")
    remove_parser.set_defaults(handler="remove_server")

    return parser


def main(argv: Optional[Sequence[str]] = None, console: Optional[Console] = None) -> int:
    """
    DB Access CLI 主入口函数

    Returns:
        int: 退出码
    """
    parser = create_argument_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "handler", None):
        parser.print_help()
        return 0

    cli = DBAccessCLI(console, args.config)
    try:
        cli.setup_logging()
        return getattr(cli, args.handler)(args)
    except DBAccessError as e:
        logger.error(f"命令执行失败: {e}")
        cli.console.print(f"❌ [bold red]{e.__class__.__name__}[/bold red]: {escape(e.message)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
