"""
DeskWatch 路由模块包 (DeskWatch Router Module Package)

- auth.py: 用户认证（注册、登录、注销、当前用户）
- instances.py: 主机快照与历史指标（需要有效会话）

所有路由模块在 main.py 中通过 app.include_router() 统一注册。
"""
