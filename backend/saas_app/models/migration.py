"""
迁移记录模型
"""
from sqlalchemy import Column, Integer, String, DateTime
from ..core.constants import MIGRATIONS_TABLE
from ..core.database import Base
from ..utils import utcnow


class Migration(Base):
    """迁移记录表：up 成功后写入，down 成功后删除"""
    __tablename__ = MIGRATIONS_TABLE

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True)
    batch = Column(Integer, nullable=False)
    executed_at = Column(DateTime, default=utcnow)
