# -*- coding: utf-8 -*-
"""
配置验证模块

功能：
- 验证 Exporter 配置的正确性
- 验证字段格式和取值范围
"""

from typing import Optional, Tuple

from config.loader import ExporterConfig


VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def validate_config(config: ExporterConfig) -> Tuple[bool, Optional[str]]:
    """
    验证配置对象

    Args:
        config: ExporterConfig 对象

    Returns:
        (is_valid, error_message) 元组
    """
    if not 1 <= config.port <= 65535:
        return False, f"port 必须在 1-65535 之间: {config.port}"

    if config.collect_timeout <= 0:
        return False, f"collect_timeout 必须大于 0: {config.collect_timeout}"

    if config.max_reader_workers < 1:
        return False, f"max_reader_workers 必须是正整数: {config.max_reader_workers}"

    if config.obs_max_workers < 1:
        return False, f"obs_max_workers 必须是正整数: {config.obs_max_workers}"

    if config.log_level.upper() not in VALID_LOG_LEVELS:
        return False, f"log_level 必须是以下值之一: {', '.join(VALID_LOG_LEVELS)}"

    return True, None
