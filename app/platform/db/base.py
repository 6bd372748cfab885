import sqlalchemy
from sqlalchemy import Column, String
from sqlalchemy.orm import declarative_base
from uuid6 import uuid7

Base = declarative_base()


class BaseModel(Base):
    __abstract__ = True
    id = Column(String, primary_key=True, default=lambda: str(uuid7()), index=True)
    created_at = Column(
        sqlalchemy.DateTime(timezone=True), server_default=sqlalchemy.func.now(), nullable=False
    )
    updated_at = Column(
        sqlalchemy.DateTime(timezone=True),
        server_default=sqlalchemy.func.now(),
        onupdate=sqlalchemy.func.now(),
        nullable=False,
    )

