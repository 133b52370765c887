# -*- coding: utf-8 -*-
"""
OpenStack Provider 模块

功能：
- 建立每个采集周期的认证会话
- 定义采集过程中的错误类型
"""

from .errors import (
    ExporterError, AuthenticationError, ResourceQueryError,
    CollectionCancelled, DataShapeError, CollectionError
)
from .session import Session, SessionProvider
