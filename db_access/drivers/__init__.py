"""
数据库驱动模块包

- DatabaseDriver / DriverHandle: 驱动能力接口
- SQLAlchemyDriver: 基于 SQLAlchemy 2.x 的实现
"""

from .base import DatabaseDriver, DriverHandle
from .sqlalchemy_driver import SQLAlchemyDriver, SQLAlchemyHandle

__all__ = [
    "DatabaseDriver",
    "DriverHandle",
    "SQLAlchemyDriver",
    "SQLAlchemyHandle",
]
