import os
from typing import Any, Dict, Union
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, URL, make_url
from sqlalchemy.orm import declarative_base
from .constants import TENANT_DATABASE_PREFIX, DB_MAX_OVERFLOW, DB_POOL_RECYCLE

# 声明基类（表结构由迁移创建，ORM模型只做映射）
Base = declarative_base()


def tenant_database_name(tenant_id: Union[int, str]) -> str:
    """租户库名：tenant_<id>"""
    return f"{TENANT_DATABASE_PREFIX}{tenant_id}"


def tenant_database_url(base_url: Union[str, URL], tenant_id: Union[int, str]) -> URL:
    """
    由全局库URL派生租户库URL

    SQLite 没有库的概念，租户库为全局库文件同目录下的 tenant_<id>.db
    """
    url = make_url(base_url)
    name = tenant_database_name(tenant_id)
    if url.get_backend_name() == "sqlite":
        if not url.database or url.database == ":memory:":
            return url
        directory = os.path.dirname(url.database)
        return url.set(database=os.path.join(directory, f"{name}.db"))
    return url.set(database=name)


def build_engine(url: Union[str, URL], pool_size: int, echo: bool = False) -> Engine:
    """创建数据库引擎 - 配置连接池"""
    url = make_url(url)
    kwargs: Dict[str, Any] = {"echo": echo}
    if url.get_backend_name() == "sqlite":
        # SQLite 需要这个参数（异步路由中跨线程使用）
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs.update(
            pool_size=pool_size,             # 每个库最多 pool_size 个连接
            max_overflow=DB_MAX_OVERFLOW,    # 超出部分在连接池内排队
            pool_pre_ping=True,              # 连接前检查连接是否有效
            pool_recycle=DB_POOL_RECYCLE,    # 连接回收时间（秒）
        )
    return create_engine(url, **kwargs)
