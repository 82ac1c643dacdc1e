"""Hive Core -- 领域模型、SQLite 存储、配置与日志"""
