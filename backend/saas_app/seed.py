"""
演示数据
三个演示租户（acme / techstart / smallbiz），各带三个用户
"""
import logging
from typing import Any, Dict, List, Optional
from .core.registry import ConnectionRegistry
from .core.store import StoreTarget
from .migrations.runner import MigrationRunner
from .schemas.user import UserCreate
from .services.provisioning_service import TenantProvisioningService
from .services.tenant_service import TenantService
from .services.user_service import UserService

logger = logging.getLogger(__name__)

DEMO_TENANTS = [
    {"name": "Acme Corporation", "subdomain": "acme", "plan_type": "premium"},
    {"name": "TechStart Inc", "subdomain": "techstart", "plan_type": "basic"},
    {"name": "Small Business", "subdomain": "smallbiz", "plan_type": "free"},
]

DEMO_USERS = [
    {"name": "Admin User", "local_part": "admin", "role": "admin", "password": "admin123", "age": 35, "profession": "Administrator"},
    {"name": "John Doe", "local_part": "john", "role": "user", "password": "user123", "age": 28, "profession": "Developer"},
    {"name": "Jane Smith", "local_part": "jane", "role": "moderator", "password": "user123", "age": 32, "profession": "Manager"},
]


async def seed_demo_data(registry: ConnectionRegistry, tenants: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
    """
    写入演示数据（已存在的子域名会跳过）

    Returns:
        每个新建租户的摘要：tenant_id、subdomain、plan_type、users
    """
    await MigrationRunner(registry).run()

    tenant_service = TenantService(registry)
    provisioning = TenantProvisioningService(registry)
    user_service = UserService(registry)
    created = []

    for demo in tenants or DEMO_TENANTS:
        if await tenant_service.find_by_subdomain(demo["subdomain"]) is not None:
            logger.info(f"演示租户已存在，跳过: {demo['subdomain']}")
            continue

        result = await provisioning.provision(
            name=demo["name"],
            subdomain=demo["subdomain"],
            plan_type=demo["plan_type"],
            created_by="seed_script",
        )
        tenant_id = result.tenant.id
        await tenant_service.update_settings(tenant_id, {"onboarding_completed": True})

        emails = []
        for user in DEMO_USERS:
            email = f"{user['local_part']}@{demo['subdomain']}.com"
            await user_service.create(UserCreate(
                tenant_id=tenant_id,
                name=user["name"],
                email=email,
                password=user["password"],
                role=user["role"],
                age=user["age"],
                profession=user["profession"],
                status="active",
                email_verified=True,
            ), target=StoreTarget.BOTH)
            emails.append(email)

        logger.info(f"演示租户已创建: {demo['name']} ({len(emails)} 个用户)")
        created.append({
            "tenant_id": tenant_id,
            "subdomain": demo["subdomain"],
            "plan_type": demo["plan_type"],
            "users": emails,
        })
    return created
