"""
用户服务

文档库是用户数据的系统记录源：
- 主库的 users 集合保存所有用户（认证查询始终走主集合）
- tenant_id > 1 的用户在 tenant_<id> 库的 users 集合中再保存一份，_id 相同
- 关系型库镜像按调用方的 target 写入全局库
多份副本之间不是事务性的，主集合写入成功即视为成功，其余副本的失败记录在 WriteResult 中。
"""
import logging
from typing import Any, Dict, List, Optional, Union
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from ..core.constants import DEFAULT_USER_LIST_LIMIT, TENANT_DATABASE_PREFIX, USER_ROLES, USER_STATUSES
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..core.monitoring import record_degraded_write
from ..core.registry import ConnectionRegistry
from ..core.security import get_password_hash, verify_password
from ..core.store import StoreTarget, WriteResult, store_errors
from ..models.mongodb_models import UserDocument
from ..models.user import User
from ..schemas.user import OAuthProfile, UserCreate, UserResponse, UserUpdate
from ..utils import utcnow

logger = logging.getLogger(__name__)

RELATIONAL = StoreTarget.RELATIONAL.value
MAIN_COLLECTION = "document"

# 允许更新的字段（tenant_id 不允许修改）
UPDATABLE_FIELDS = (
    "name", "email", "password", "age", "profession", "summary", "google_id", "avatar",
    "role", "status", "email_verified", "last_login",
)
# 可清除的可选资料字段
CLEARABLE_FIELDS = ("age", "profession", "summary", "google_id", "avatar", "last_login")


def hash_password(password: str) -> str:
    return get_password_hash(password)


def check_password(password: str, hashed_password: Optional[str]) -> bool:
    return verify_password(password, hashed_password)


def _to_object_id(user_id: Union[str, ObjectId]) -> Optional[ObjectId]:
    if isinstance(user_id, ObjectId):
        return user_id
    try:
        return ObjectId(str(user_id))
    except (InvalidId, TypeError):
        return None


def _to_response(document: Dict[str, Any]) -> UserResponse:
    values = {key: value for key, value in document.items() if key not in ("_id", "password")}
    values["id"] = str(document["_id"])
    return UserResponse.model_validate(values)


def _to_row_id(user_id: Union[str, int, ObjectId]) -> Optional[int]:
    try:
        return int(str(user_id))
    except ValueError:
        return None


def _row_to_response(row: User) -> UserResponse:
    values = {column.name: getattr(row, column.name) for column in User.__table__.columns if column.name != "password"}
    values["id"] = str(row.id)
    return UserResponse.model_validate(values)


class UserService:
    """用户增删改查、认证与第三方账号关联"""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry
        self.default_tenant_id = registry.settings.default_tenant_id

    def _main_collection(self) -> AsyncIOMotorCollection:
        return self.registry.document()["users"]

    def _is_default_tenant(self, tenant_id: Optional[int]) -> bool:
        return not tenant_id or tenant_id == self.default_tenant_id

    def collection_for(self, tenant_id: Optional[int] = None) -> AsyncIOMotorCollection:
        """tenant_id 为空或为默认租户时使用主集合，否则使用 tenant_<id> 库的集合"""
        if self._is_default_tenant(tenant_id):
            return self._main_collection()
        return self.registry.document(tenant_id)["users"]

    @staticmethod
    def _tenant_store(tenant_id: int) -> str:
        return f"document:{TENANT_DATABASE_PREFIX}{tenant_id}"

    def _degraded(self, result: WriteResult, store: str, error: Exception, operation: str) -> None:
        logger.error(f"用户副本写入失败: store={store}, operation={operation}, error={error}", exc_info=True)
        result.record_failure(store, error)
        record_degraded_write(operation, result.warnings)

    async def create(self, data: Union[UserCreate, Dict[str, Any]], target: StoreTarget = StoreTarget.DOCUMENT) -> WriteResult:
        """
        创建用户

        Args:
            data: 用户数据，name/email 必填，password 为明文（可选，写入前哈希）
            target: DOCUMENT 只写文档库；BOTH 额外写入关系型库镜像；RELATIONAL 只写关系型库

        Returns:
            WriteResult，record 为 UserResponse
        """
        if isinstance(data, dict):
            data = UserCreate(**data)
        name = (data.name or "").strip()
        email = (data.email or "").strip().lower()
        if not name or not email:
            raise ValidationError("姓名和邮箱为必填项")
        if data.role not in USER_ROLES:
            raise ValidationError(f"无效的用户角色: {data.role}")
        if data.status not in USER_STATUSES:
            raise ValidationError(f"无效的用户状态: {data.status}")

        tenant_id = data.tenant_id or self.default_tenant_id
        if await self.find_by_email(email, tenant_id) is not None:
            raise ConflictError(f"邮箱已被使用: {email}")

        user = UserDocument(
            **data.model_dump(exclude={"name", "email", "password", "tenant_id"}),
            tenant_id=tenant_id,
            name=name,
            email=email,
            password=hash_password(data.password) if data.password else None,
        )
        document = user.to_document()
        result = WriteResult()

        if target.includes_document:
            with store_errors("创建用户"):
                inserted = await self._main_collection().insert_one(document)
            document["_id"] = inserted.inserted_id
            result.record_success(MAIN_COLLECTION, primary=True)

            if not self._is_default_tenant(tenant_id):
                store = self._tenant_store(tenant_id)
                try:
                    await self.collection_for(tenant_id).insert_one(dict(document))
                    result.record_success(store)
                except PyMongoError as e:
                    self._degraded(result, store, e, f"create user {document['_id']}")

        if target.includes_relational and target.includes_document:
            try:
                self._insert_relational(document)
                result.record_success(RELATIONAL)
            except SQLAlchemyError as e:
                self._degraded(result, RELATIONAL, e, f"create user {document['_id']}")
        elif target.includes_relational:
            with store_errors("创建用户"):
                document["_id"] = self._insert_relational(document)
            result.record_success(RELATIONAL, primary=True)

        result.record = _to_response(document)
        logger.info(f"用户已创建: id={result.record.id}, tenant_id={tenant_id}, email={email}")
        return result

    def _insert_relational(self, document: Dict[str, Any]) -> int:
        values = {key: value for key, value in document.items() if key != "_id"}
        with self.registry.session() as db:
            row = User(**values)
            db.add(row)
            db.flush()
            return row.id

    async def find_by_id(
        self,
        user_id: Union[str, int, ObjectId],
        tenant_id: Optional[int] = None,
        target: StoreTarget = StoreTarget.DOCUMENT
    ) -> Optional[UserResponse]:
        """
        按ID查询用户

        target 为 RELATIONAL 时查询全局库的用户镜像（ID 为整数），否则按 tenant_id 路由到文档集合。
        """
        if target == StoreTarget.RELATIONAL:
            row_id = _to_row_id(user_id)
            if row_id is None:
                return None
            return self._find_row(User.id == row_id, tenant_id)
        document = await self._find_document_by_id(user_id, tenant_id)
        return _to_response(document) if document else None

    async def _find_document_by_id(self, user_id, tenant_id: Optional[int] = None) -> Optional[Dict[str, Any]]:
        object_id = _to_object_id(user_id)
        if object_id is None:
            return None
        with store_errors("查询用户"):
            return await self.collection_for(tenant_id).find_one({"_id": object_id})

    async def find_by_email(
        self,
        email: str,
        tenant_id: Optional[int] = None,
        target: StoreTarget = StoreTarget.DOCUMENT
    ) -> Optional[UserResponse]:
        """按邮箱查询（文档库始终查主集合，用于认证）"""
        email = (email or "").strip().lower()
        if target == StoreTarget.RELATIONAL:
            return self._find_row(User.email == email, tenant_id)
        document = await self._find_document({"email": email}, tenant_id)
        return _to_response(document) if document else None

    async def find_by_google_id(
        self,
        google_id: str,
        tenant_id: Optional[int] = None,
        target: StoreTarget = StoreTarget.DOCUMENT
    ) -> Optional[UserResponse]:
        """按 Google ID 查询（文档库始终查主集合）"""
        if target == StoreTarget.RELATIONAL:
            return self._find_row(User.google_id == google_id, tenant_id)
        document = await self._find_document({"google_id": google_id}, tenant_id)
        return _to_response(document) if document else None

    async def _find_document(self, query: Dict[str, Any], tenant_id: Optional[int] = None) -> Optional[Dict[str, Any]]:
        if tenant_id:
            query["tenant_id"] = tenant_id
        with store_errors("查询用户"):
            return await self._main_collection().find_one(query)

    def _find_row(self, condition, tenant_id: Optional[int] = None) -> Optional[UserResponse]:
        with store_errors("查询用户"):
            with self.registry.session() as db:
                query = db.query(User).filter(condition)
                if tenant_id:
                    query = query.filter(User.tenant_id == tenant_id)
                row = query.first()
                return _row_to_response(row) if row else None

    async def find_all(
        self,
        tenant_id: Optional[int] = None,
        all_tenants: bool = False,
        skip: int = 0,
        limit: int = DEFAULT_USER_LIST_LIMIT,
        filters: Optional[Dict[str, Any]] = None,
        target: StoreTarget = StoreTarget.DOCUMENT
    ) -> List[UserResponse]:
        """
        查询用户列表（最新创建的在前）

        all_tenants=True 时查询全部用户；否则按 tenant_id（默认租户为1）过滤，文档库还按它路由集合。
        """
        if not all_tenants:
            tenant_id = tenant_id or self.default_tenant_id
        if target == StoreTarget.RELATIONAL:
            return self._find_rows(None if all_tenants else tenant_id, skip, limit, filters)

        query: Dict[str, Any] = dict(filters or {})
        if all_tenants:
            collection = self._main_collection()
        else:
            collection = self.collection_for(tenant_id)
            query["tenant_id"] = tenant_id

        with store_errors("查询用户列表"):
            documents = await collection.find(
                query, sort=[("created_at", DESCENDING), ("_id", DESCENDING)], skip=skip, limit=limit
            ).to_list(length=None)
        return [_to_response(document) for document in documents]

    def _find_rows(
        self,
        tenant_id: Optional[int],
        skip: int,
        limit: int,
        filters: Optional[Dict[str, Any]] = None
    ) -> List[UserResponse]:
        filters = dict(filters or {})
        unknown = sorted(set(filters) - set(User.__table__.columns.keys()))
        if unknown:
            raise ValidationError(f"无效的过滤字段: {', '.join(unknown)}")
        with store_errors("查询用户列表"):
            with self.registry.session() as db:
                query = db.query(User).filter_by(**filters)
                if tenant_id is not None:
                    query = query.filter(User.tenant_id == tenant_id)
                rows = query.order_by(User.created_at.desc(), User.id.desc()).offset(skip).limit(limit).all()
                return [_row_to_response(row) for row in rows]

    async def count(self, tenant_id: Optional[int] = None, target: StoreTarget = StoreTarget.DOCUMENT) -> int:
        tenant_id = tenant_id or self.default_tenant_id
        if target == StoreTarget.RELATIONAL:
            with store_errors("统计用户"):
                with self.registry.session() as db:
                    return db.query(func.count(User.id)).filter(User.tenant_id == tenant_id).scalar()
        with store_errors("统计用户"):
            return await self.collection_for(tenant_id).count_documents({"tenant_id": tenant_id})

    async def update(
        self,
        user_id: Union[str, ObjectId],
        data: Union[UserUpdate, Dict[str, Any]],
        tenant_id: Optional[int] = None,
        target: StoreTarget = StoreTarget.DOCUMENT
    ) -> WriteResult:
        """
        部分更新用户

        主集合是主写入；租户副本和关系型镜像（target 包含 RELATIONAL 时）为次级写入。
        传入 tenant_id 时只允许更新该租户下的用户。
        可选资料字段显式传 None 表示清除（文档库 $unset），其余字段的 None 被忽略。
        """
        changes = data.model_dump(exclude_unset=True) if isinstance(data, UserUpdate) else dict(data)
        changes = {key: value for key, value in changes.items() if key in UPDATABLE_FIELDS}
        if "role" in changes and changes["role"] not in USER_ROLES:
            raise ValidationError(f"无效的用户角色: {changes['role']}")
        if "status" in changes and changes["status"] not in USER_STATUSES:
            raise ValidationError(f"无效的用户状态: {changes['status']}")
        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationError("姓名不能为空")
        if "email" in changes:
            changes["email"] = (changes["email"] or "").strip().lower()
            if not changes["email"]:
                raise ValidationError("邮箱不能为空")
        if changes.get("password"):
            changes["password"] = hash_password(changes["password"])
        else:
            changes.pop("password", None)
        cleared = sorted(key for key, value in changes.items() if value is None and key in CLEARABLE_FIELDS)
        changes = {key: value for key, value in changes.items() if value is not None}
        changes["updated_at"] = utcnow()

        operation: Dict[str, Any] = {"$set": changes}
        if cleared:
            operation["$unset"] = {key: "" for key in cleared}

        object_id = _to_object_id(user_id)
        if object_id is None:
            raise NotFoundError(f"用户不存在: {user_id}")
        query: Dict[str, Any] = {"_id": object_id}
        if tenant_id:
            query["tenant_id"] = tenant_id

        result = WriteResult()
        with store_errors("更新用户"):
            before = await self._main_collection().find_one_and_update(
                query, operation, return_document=ReturnDocument.BEFORE
            )
        if before is None:
            raise NotFoundError(f"用户不存在: {user_id}")
        result.record_success(MAIN_COLLECTION, primary=True)
        after = {key: value for key, value in {**before, **changes}.items() if key not in cleared}
        owner_tenant_id = before.get("tenant_id")

        if not self._is_default_tenant(owner_tenant_id):
            store = self._tenant_store(owner_tenant_id)
            try:
                await self.collection_for(owner_tenant_id).update_one({"_id": object_id}, operation)
                result.record_success(store)
            except PyMongoError as e:
                self._degraded(result, store, e, f"update user {object_id}")

        if target.includes_relational:
            try:
                with self.registry.session() as db:
                    db.query(User).filter(
                        User.tenant_id == owner_tenant_id, User.email == before["email"]
                    ).update({**changes, **{key: None for key in cleared}}, synchronize_session=False)
                result.record_success(RELATIONAL)
            except SQLAlchemyError as e:
                self._degraded(result, RELATIONAL, e, f"update user {object_id}")

        result.record = _to_response(after)
        logger.info(f"用户已更新: id={object_id}, fields={sorted(changes)}, cleared={cleared}")
        return result

    async def delete(
        self,
        user_id: Union[str, ObjectId],
        tenant_id: Optional[int] = None,
        target: StoreTarget = StoreTarget.DOCUMENT
    ) -> WriteResult:
        """删除用户（主集合、租户副本、可选的关系型镜像）"""
        object_id = _to_object_id(user_id)
        if object_id is None:
            raise NotFoundError(f"用户不存在: {user_id}")
        query: Dict[str, Any] = {"_id": object_id}
        if tenant_id:
            query["tenant_id"] = tenant_id

        result = WriteResult(record=True)
        with store_errors("删除用户"):
            deleted = await self._main_collection().find_one_and_delete(query)
        if deleted is None:
            raise NotFoundError(f"用户不存在: {user_id}")
        result.record_success(MAIN_COLLECTION, primary=True)
        owner_tenant_id = deleted.get("tenant_id")

        if not self._is_default_tenant(owner_tenant_id):
            store = self._tenant_store(owner_tenant_id)
            try:
                await self.collection_for(owner_tenant_id).delete_one({"_id": object_id})
                result.record_success(store)
            except PyMongoError as e:
                self._degraded(result, store, e, f"delete user {object_id}")

        if target.includes_relational:
            try:
                with self.registry.session() as db:
                    db.query(User).filter(
                        User.tenant_id == owner_tenant_id, User.email == deleted["email"]
                    ).delete(synchronize_session=False)
                result.record_success(RELATIONAL)
            except SQLAlchemyError as e:
                self._degraded(result, RELATIONAL, e, f"delete user {object_id}")

        logger.info(f"用户已删除: id={object_id}, tenant_id={owner_tenant_id}")
        return result

    async def update_last_login(self, user_id: Union[str, ObjectId]) -> WriteResult:
        return await self.update(user_id, {"last_login": utcnow()})

    async def authenticate(self, email: str, password: str) -> Optional[UserResponse]:
        """
        本地账号认证

        邮箱不存在、账号没有密码（仅第三方登录）或密码错误时返回 None。
        """
        document = await self._find_document({"email": (email or "").strip().lower()})
        if document is None:
            logger.info(f"登录失败，邮箱不存在: {email}")
            return None
        if not check_password(password, document.get("password")):
            logger.info(f"登录失败，密码错误: {email}")
            return None

        result = await self.update_last_login(document["_id"])
        return result.record

    async def link_oauth_profile(self, profile: OAuthProfile) -> UserResponse:
        """
        处理第三方登录返回的资料

        1. 按 google_id 找到用户：刷新最后登录时间
        2. 按邮箱找到用户：关联 google_id 和头像
        3. 都找不到：在默认租户下创建已验证邮箱的新用户
        """
        user = await self.find_by_google_id(profile.id)
        if user is not None:
            result = await self.update_last_login(user.id)
            return result.record

        email = profile.primary_email
        if not email:
            raise ValidationError("第三方账号未提供邮箱")

        user = await self.find_by_email(email)
        if user is not None:
            changes: Dict[str, Any] = {"google_id": profile.id, "last_login": utcnow()}
            if profile.primary_photo:
                changes["avatar"] = profile.primary_photo
            result = await self.update(user.id, changes)
            logger.info(f"已关联第三方账号: user_id={user.id}, google_id={profile.id}")
            return result.record

        result = await self.create(UserCreate(
            tenant_id=self.default_tenant_id,
            name=profile.display_name,
            email=email,
            google_id=profile.id,
            avatar=profile.primary_photo,
            email_verified=True,
            last_login=utcnow(),
        ))
        return result.record
