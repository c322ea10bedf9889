"""
Database module for the quoting system.
Provides SQLite database operations with async support.
"""

from .connection import DatabaseManager, db_manager
from .operations import DatabaseOperations

# 创建全局数据库操作实例（首次使用时初始化）
db_ops = DatabaseOperations(db_manager)

__all__ = ['models', 'connection', 'operations', 'db_ops', 'db_manager',
           'DatabaseManager', 'DatabaseOperations']
