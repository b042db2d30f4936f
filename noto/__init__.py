"""Noto - 本地优先的清单与便签状态容器"""

__version__ = "0.1.0"
