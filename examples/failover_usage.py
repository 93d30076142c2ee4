"""
多服务器故障转移示例
"""

import tempfile
from pathlib import Path

from db_access import ConfigManager, ConnectionError, DatabaseManager, ServerDescriptor


def failover_example(config_dir: Path):
    """故障转移与配置文件示例"""

    config = ConfigManager(config_dir=config_dir)
    # 第一台服务器不可达（目录不存在），连接时会转移到第二台
    config.add_server(ServerDescriptor("primary", database=str(config_dir / "down" / "a.db")))
    config.add_server(ServerDescriptor("replica", database=str(config_dir / "replica.db")))

    db = DatabaseManager.from_config(config)
    try:
        db.query("SELECT 1")
        print(f"✅ 已连接: {db.get_host()}")

        db.load_balance()  # 只影响下一次连接
        db.set_persistent_connection(True)
        print(f"🔄 重新连接: {db.get_host()}")
    except ConnectionError as e:
        print(f"❌ 所有服务器不可用: {e.attempted_hosts}")
    finally:
        db.close()
        print(f"🔌 {db.get_host()}")


if __name__ == "__main__":
    with tempfile.TemporaryDirectory() as tmp:
        failover_example(Path(tmp))
