"""
把文档库中字符串形式的 tenant_id 统一转换为整数

早期写入的用户文档同时存在 "5" 与 5 两种格式，转换后查询只需按整数匹配。
"""
import logging

logger = logging.getLogger(__name__)

COLLECTIONS = ("users", "subscriptions")


async def upgrade_document(db, schema_validation):
    for name in COLLECTIONS:
        collection = db[name]
        converted = 0
        documents = await collection.find({"tenant_id": {"$type": "string"}}).to_list(length=None)
        for document in documents:
            value = document["tenant_id"].strip()
            if not value.isdigit():
                logger.warning(f"无法转换的 tenant_id: {db.name}.{name} _id={document['_id']} value={value!r}")
                continue
            await collection.update_one({"_id": document["_id"]}, {"$set": {"tenant_id": int(value)}})
            converted += 1
        if converted:
            logger.info(f"已转换 {db.name}.{name} 中 {converted} 条 tenant_id")


async def downgrade_document(db):
    # 整数是规范格式，无需还原
    logger.info(f"跳过 tenant_id 规范化回滚: {db.name}")
