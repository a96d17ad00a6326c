#!/usr/bin/env python
"""
写入演示数据

登录账号：
- admin@[subdomain].com / admin123 (Admin)
- john@[subdomain].com / user123 (User)
- jane@[subdomain].com / user123 (Moderator)
"""
import asyncio
import sys
import os

# 添加项目路径
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from saas_app.core.exceptions import AppError
from saas_app.core.registry import ConnectionRegistry
from saas_app.core.structured_logging import setup_logging
from saas_app.seed import seed_demo_data


async def run() -> int:
    registry = ConnectionRegistry()
    try:
        print("正在连接数据库...")
        await registry.initialize()
        created = await seed_demo_data(registry)
    except AppError as e:
        print(f"❌ 写入演示数据失败: {e.message}")
        return 1
    finally:
        await registry.close()

    for item in created:
        print(f"✅ 租户 {item['subdomain']} (id={item['tenant_id']}, {item['plan_type']}): {', '.join(item['users'])}")
    if not created:
        print("ℹ️  演示租户均已存在，无需写入")
    print("\n登录账号：admin@[subdomain].com / admin123，john@[subdomain].com / user123，jane@[subdomain].com / user123")
    return 0


if __name__ == "__main__":
    setup_logging(log_level=os.getenv("LOG_LEVEL", "INFO"))
    sys.exit(asyncio.run(run()))
