"""统一 API 响应模型"""

from typing import Any, Optional

from pydantic import BaseModel


class ApiResponse(BaseModel):
    """
    标准 API 响应封装

    degraded：请求本身成功，但数据不可用（前端渲染为降级卡片）
    """
    success: bool = True
    data: Optional[Any] = None
    message: str = ""
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None, message: str = "success") -> "ApiResponse":
        return cls(success=True, data=data, message=message)

    @classmethod
    def degraded(cls, data: Any, error: Optional[str], message: str = "数据暂不可用") -> "ApiResponse":
        return cls(success=True, data=data, message=message, error=error)

    @classmethod
    def fail(cls, error: str, message: str = "failed") -> "ApiResponse":
        return cls(success=False, error=error, message=message)
