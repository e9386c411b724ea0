"""
实例相关响应模型

定义主机快照（GET /api/instances）与主机历史指标（GET /api/instances/{id}/metrics）的数据结构。
字段名与原有面板接口保持一致；内存与网络以 MiB 为单位，存储以 GiB 为单位。
"""
from typing import Literal

from pydantic import BaseModel


class MetricRow(BaseModel):
    """历史指标行：每个时间桶一行，缺失列为 0.0。"""
    recorded_at: str
    cpu_usage: float = 0.0  # 百分比 [0, 100]
    ram_used: float = 0.0  # MiB
    storage_used: float = 0.0  # GiB
    network_in: float = 0.0  # MiB/s
    network_out: float = 0.0  # MiB/s


class InstanceRow(BaseModel):
    """主机快照行：每台已知主机一行。"""
    id: str
    name: str
    status: Literal["online", "offline"]
    os_type: str = "unknown"
    ip_address: str = "unknown"
    cpu_cores: int = 0
    cpu_usage: float = 0.0
    ram_total: float = 0.0
    ram_used: float = 0.0
    storage_total: float = 0.0
    storage_used: float = 0.0
    network_in: float = 0.0
    network_out: float = 0.0
    created_at: str = ""
