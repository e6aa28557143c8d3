# storefront/schemas/session.py
from sqlmodel import SQLModel

from storefront.core.notices import Notice


class NoticeList(SQLModel):
    notices: list[Notice]
