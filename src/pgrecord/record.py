"""Base class for mapped records."""
from typing import ClassVar

from pgrecord.query import TableName
from pgrecord.statements import build_insert, build_upsert

__all__ = ['DatabaseRecord']


class DatabaseRecord:
    """Base for dataclass records mapped to a table.

    Subclasses set ``__tablename__`` and declare mapped fields with
    `pgrecord.schema.column`.
    """

    __tablename__: ClassVar[str | None] = None

    @classmethod
    def table(cls) -> TableName:
        return TableName(cls.__tablename__)

    def get_insert_query(self) -> str:
        return build_insert(self)

    def get_upsert_query(self) -> str:
        return build_upsert(self)
