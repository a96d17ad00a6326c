#!/usr/bin/env python
"""数据库迁移脚本"""
import sys
import os

# 添加项目路径
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from saas_app.core.structured_logging import setup_logging
from saas_app.migrations.commands import main

if __name__ == "__main__":
    setup_logging(log_level=os.getenv("LOG_LEVEL", "INFO"))
    sys.exit(main(sys.argv[1:]))
