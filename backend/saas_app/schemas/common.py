"""
通用模式
"""
from pydantic import BaseModel
from typing import Generic, List, TypeVar

T = TypeVar('T')


class Page(BaseModel, Generic[T]):
    """分页结果"""
    items: List[T]
    total: int
    page: int
    per_page: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.per_page - 1) // self.per_page if self.total > 0 else 0
