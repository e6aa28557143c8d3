# storefront/routers/addresses.py
from fastapi import APIRouter, Depends, status

from storefront.core.auth import require_auth
from storefront.models.address import Address
from storefront.models.auth import AuthSession
from storefront.schemas.address import AddressCreate, AddressUpdate
from storefront.session import StorefrontSession, get_storefront_session

router = APIRouter(prefix="/addresses", tags=["Addresses"])


@router.get("", response_model=list[Address])
async def list_addresses(
    auth: AuthSession = Depends(require_auth),
    session: StorefrontSession = Depends(get_storefront_session),
):
    """Active addresses, default first."""
    return await session.addresses().list_active(auth)


@router.post("", response_model=Address, status_code=status.HTTP_201_CREATED)
async def create_address(
    data: AddressCreate,
    auth: AuthSession = Depends(require_auth),
    session: StorefrontSession = Depends(get_storefront_session),
):
    """
    Save a new address. The first one becomes the default.
    """
    return await session.addresses().create(auth, data)


@router.patch("/{address_id}", response_model=Address)
async def update_address(
    address_id: int,
    data: AddressUpdate,
    auth: AuthSession = Depends(require_auth),
    session: StorefrontSession = Depends(get_storefront_session),
):
    return await session.addresses().update(auth, address_id, data)


@router.delete("/{address_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_address(
    address_id: int,
    auth: AuthSession = Depends(require_auth),
    session: StorefrontSession = Depends(get_storefront_session),
):
    """
    Remove an address. The default address and the last address cannot
    be removed.
    """
    await session.addresses().delete(auth, address_id)


@router.post("/{address_id}/default", response_model=list[Address])
async def set_default_address(
    address_id: int,
    auth: AuthSession = Depends(require_auth),
    session: StorefrontSession = Depends(get_storefront_session),
):
    return await session.addresses().set_default(auth, address_id)
