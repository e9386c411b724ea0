"""请求/响应模型包 (Request/Response Schemas Package)"""
