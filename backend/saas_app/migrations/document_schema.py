"""
文档库集合创建工具（供迁移单元使用）
"""
import logging
from typing import Any, Dict, Optional
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase

logger = logging.getLogger(__name__)


async def ensure_collection(
    db: AsyncIOMotorDatabase,
    name: str,
    schema: Optional[Dict[str, Any]] = None,
    schema_validation: bool = True
) -> AsyncIOMotorCollection:
    """创建集合（已存在时直接返回），按需附加 $jsonSchema 校验器"""
    if name in await db.list_collection_names():
        return db[name]

    if schema is not None and schema_validation:
        await db.create_collection(name, validator={"$jsonSchema": schema})
        logger.info(f"已创建集合并附加校验器: {db.name}.{name}")
    else:
        await db.create_collection(name)
        logger.info(f"已创建集合: {db.name}.{name}")
    return db[name]


async def drop_collection(db: AsyncIOMotorDatabase, name: str) -> None:
    await db.drop_collection(name)
    logger.info(f"已删除集合: {db.name}.{name}")
