"""Clarity Cycle：番茄钟任务、专注会话与周度追踪的 API 服务。"""

from .cli import main

__version__ = "1.0.0"

__all__ = ["main", "__version__"]
