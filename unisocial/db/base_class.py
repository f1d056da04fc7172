# unisocial/db/base_class.py
from typing import Any

from sqlalchemy.orm import as_declarative


# Every model names its own __tablename__
@as_declarative()
class Base:
    id: Any
    __name__: str
