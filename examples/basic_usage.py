"""
基础使用示例
"""

import tempfile
from pathlib import Path

from db_access import DatabaseManager, NoRowError, ServerDescriptor, SQLAlchemyDriver


def basic_usage_example(db_file: Path):
    """基础使用示例"""

    servers = [ServerDescriptor("local", database=str(db_file))]

    with DatabaseManager(servers, SQLAlchemyDriver("sqlite")) as db:
        db.query(
            "CREATE TABLE users ("
            "user_id INTEGER PRIMARY KEY AUTOINCREMENT, "
            "firstname VARCHAR(50) NOT NULL, "
            "lastname VARCHAR(50))"
        )

        # INSERT 返回新主键
        user_id = db.query(
            "INSERT INTO users (firstname, lastname) VALUES (?, ?)", ["John", "Doe"]
        )
        print(f"✅ 新用户: {user_id}")
        for first, last in [("Ada", "Lovelace"), ("Alan", "Turing")]:
            db.query("INSERT INTO users (firstname, lastname) VALUES (?, ?)", [first, last])

        # 数组参数展开为 IN (?, ?, ...)
        rows = db.query("SELECT * FROM users WHERE user_id IN (?)", [[1, 3, 5]])
        print(f"📋 匹配的用户: {rows}")

        # 不可信的列名只能通过目录校验后拼接
        column = db.escape_identifier("lastname")
        if column:
            print(db.query_column(f"SELECT {column} FROM users ORDER BY user_id"))

        try:
            db.query_row("SELECT * FROM users WHERE user_id = ?", 99)
        except NoRowError as e:
            print(f"❌ {e}")

        # 事务
        db.start_transaction()
        db.query("UPDATE users SET lastname = ? WHERE user_id = ?", ["Smith", user_id])
        db.query("DELETE FROM users WHERE firstname = ?", "Alan")
        db.commit_transaction()
        print(f"📝 最近的事务:\n{db.get_last()}")

        # 流式读取
        db.query_loop("SELECT firstname FROM users ORDER BY user_id")
        while (row := db.query_next()) is not False:
            print(row)

        # 只渲染不执行
        db.query_dump("SELECT * FROM users WHERE lastname = ?", ["O'Brien"])
        print(f"📊 共执行 {db.get_query_count()} 条语句")


if __name__ == "__main__":
    with tempfile.TemporaryDirectory() as tmp:
        basic_usage_example(Path(tmp) / "example.db")
