"""
单位换算与序列化工具

字节按二进制（1024 进制）换算；时间戳按 RFC 3339 输出，格式与 Flux 的 string(v: time) 一致：
UTC、以 Z 结尾、小数秒去掉末尾的 0。
"""
import math
from datetime import datetime, timezone

MIB = 1024.0 * 1024.0
GIB = 1024.0 * 1024.0 * 1024.0


def bytes_to_mib(value: float) -> float:
    return value / MIB


def bytes_to_gib(value: float) -> float:
    return value / GIB


def finite(value) -> float | None:
    """数值且有限时返回 float，否则视为缺失 (None)。"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def to_rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    return text + "Z"
