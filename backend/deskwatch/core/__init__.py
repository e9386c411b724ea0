"""
核心模块包 (Core Module Package)

配置管理、数据库连接、InfluxDB 客户端、会话鉴权、异常处理等基础组件。
Configuration, database, InfluxDB client, session guard and error handling.
"""
