#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
OpenStack Exporter 主程序入口

功能：
- 启动 Flask HTTP 服务器
- 暴露 /metrics 端点供 Prometheus 抓取（每次抓取实时采集）
- 暴露 / 首页和 /health 健康检查端点
"""

import json
import logging
import sys

import click
import yaml
from flask import Flask
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry

from collector import SnapshotAssembler, create_registry, get_metrics
from config.loader import ExporterConfig, load_exporter_config
from config.validator import validate_config
from provider.openstack.errors import CollectionError

logger = logging.getLogger(__name__)

VERSION = '0.1.0'

LANDING_PAGE = """<html>
<head><title>OpenStack Exporter</title></head>
<body>
<h1>OpenStack Exporter</h1>
<p><a href='/metrics'>Metrics</a></p>
</body>
</html>
"""


def create_app(registry: CollectorRegistry) -> Flask:
    """
    创建 Flask 应用

    Args:
        registry: 包含 OpenStackCollector 的注册表
    """
    app = Flask(__name__)

    @app.route('/metrics')
    def metrics():
        """
        Prometheus metrics 端点

        认证失败时返回 503，而不是空的成功响应
        """
        try:
            metrics_data = get_metrics(registry)
        except CollectionError as e:
            logger.error(f"/metrics 采集失败: {e}")
            return f"# {e}\n", 503, {'Content-Type': 'text/plain; charset=utf-8'}
        return metrics_data, 200, {'Content-Type': CONTENT_TYPE_LATEST}

    @app.route('/')
    def index():
        """首页，链接到 /metrics"""
        return LANDING_PAGE, 200, {'Content-Type': 'text/html; charset=utf-8'}

    @app.route('/health')
    def health():
        """健康检查端点（不触发采集）"""
        return {'status': 'healthy'}, 200

    return app


LOG_FORMATS = ['logfmt', 'json']


class JsonFormatter(logging.Formatter):
    """每条日志输出一行 JSON"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'ts': self.formatTime(record),
            'level': record.levelname.lower(),
            'logger': record.name,
            'msg': record.getMessage(),
        }
        if record.exc_info:
            entry['exc'] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: str, log_format: str = 'logfmt'):
    """配置日志"""
    handler = logging.StreamHandler()
    if log_format == 'json':
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            'ts=%(asctime)s level=%(levelname)s logger=%(name)s msg="%(message)s"'
        ))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[handler]
    )
    # 减少 Flask 日志
    logging.getLogger('werkzeug').setLevel(logging.WARNING)


def build_config(config_path, port, volume_limit, log_level, collect_timeout, parallel) -> ExporterConfig:
    """
    加载配置文件并应用命令行参数

    Raises:
        ValueError: 配置无效
    """
    config = load_exporter_config(config_path)
    if port is not None:
        config.port = port
    if volume_limit is not None:
        config.volume_limit = volume_limit
    if log_level is not None:
        config.log_level = log_level
    if collect_timeout is not None:
        config.collect_timeout = collect_timeout
    if parallel is not None:
        config.parallel_readers = parallel

    is_valid, error_message = validate_config(config)
    if not is_valid:
        raise ValueError(error_message)
    return config


@click.command()
@click.version_option(VERSION, prog_name='openstack_exporter')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), default=None,
              help='Exporter 配置文件（YAML）')
@click.option('--port', type=int, default=None, help='Port to serve the metrics on (default 9595)')
@click.option('--volume.limit', 'volume_limit', type=float, default=None,
              help='Max number of volumes when on OTC (default -1)')
@click.option('--log.level', 'log_level', default=None,
              type=click.Choice(['debug', 'info', 'warning', 'error'], case_sensitive=False),
              help='日志级别')
@click.option('--log.format', 'log_format', default='logfmt', show_default=True,
              type=click.Choice(LOG_FORMATS), help='日志输出格式')
@click.option('--collect.timeout', 'collect_timeout', type=float, default=None,
              help='单次采集周期超时（秒）')
@click.option('--parallel/--sequential', 'parallel', default=None,
              help='并发或串行读取各资源')
def main(config_path, port, volume_limit, log_level, log_format, collect_timeout, parallel):
    """OpenStack Exporter"""
    try:
        config = build_config(config_path, port, volume_limit, log_level, collect_timeout, parallel)
    except (OSError, ValueError, yaml.YAMLError) as e:
        click.echo(f"加载配置失败: {e}", err=True)
        sys.exit(1)

    setup_logging(config.log_level, log_format)

    logger.info("=" * 60)
    logger.info("OpenStack Exporter 配置")
    logger.info(f"  - 端口: {config.port}")
    logger.info(f"  - OTC 卷数量上限: {config.volume_limit}")
    logger.info(f"  - 采集超时: {config.collect_timeout} 秒")
    logger.info(f"  - 读取线程数: {config.reader_workers}")
    logger.info("=" * 60)

    assembler = SnapshotAssembler(config)
    app = create_app(create_registry(assembler))

    logger.info(f"Starting exporter on {config.host}:{config.port}")
    app.run(host=config.host, port=config.port, debug=False, threaded=True)


if __name__ == '__main__':
    main()
