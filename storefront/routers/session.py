# storefront/routers/session.py
from fastapi import APIRouter, Depends

from storefront.schemas.session import NoticeList
from storefront.session import StorefrontSession, get_storefront_session

router = APIRouter(prefix="/session", tags=["Session"])


@router.get("/notices", response_model=NoticeList)
async def drain_notices(session: StorefrontSession = Depends(get_storefront_session)):
    """
    Pending toasts for this browser session; each is returned once.
    """
    return NoticeList(notices=session.notices.drain())
