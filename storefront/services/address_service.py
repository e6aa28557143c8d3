# storefront/services/address_service.py
import logging

from storefront.core.errors import NotFound, ValidationFailed
from storefront.core.notices import NoticeBoard
from storefront.models.address import Address
from storefront.models.auth import AuthSession
from storefront.repositories.address_repo import AddressRepository
from storefront.schemas.address import AddressCreate, AddressUpdate

logger = logging.getLogger(__name__)

COUNTRY = "India"


class AddressService:
    """
    Business logic for saved shipping addresses.

    Rules:
      - the first address a shopper saves becomes the default
      - the default address and the last remaining address cannot be
        deleted (set another default first / keep one address)
      - deleting only deactivates: past orders keep their snapshot
    """

    def __init__(self, address_repo: AddressRepository, notices: NoticeBoard):
        self.address_repo = address_repo
        self.notices = notices

    async def _get_active(self, auth: AuthSession, address_id: int) -> tuple[Address, list[Address]]:
        addresses = await self.address_repo.list_active(auth.user_id)
        for addr in addresses:
            if addr.id == address_id:
                return addr, addresses
        raise NotFound("Address not found")

    async def list_active(self, auth: AuthSession) -> list[Address]:
        """Default first."""
        return await self.address_repo.list_active(auth.user_id)

    async def create(self, auth: AuthSession, data: AddressCreate) -> Address:
        existing = await self.address_repo.list_active(auth.user_id)
        payload = {
            **data.model_dump(),
            "user_id": auth.user_id,
            "country": COUNTRY,
            "is_default": not existing,
            "is_active": True,
        }
        address = await self.address_repo.create(payload)
        logger.info("address %s saved for %s (default=%s)", address.id, auth.user_id, address.is_default)
        self.notices.push("Address saved")
        return address

    async def update(self, auth: AuthSession, address_id: int, data: AddressUpdate) -> Address:
        payload = data.model_dump(exclude_unset=True)
        if not payload:
            raise ValidationFailed("Nothing to update")

        address = await self.address_repo.update(auth.user_id, address_id, payload)
        if address is None or not address.is_active:
            raise NotFound("Address not found")
        self.notices.push("Address updated")
        return address

    async def delete(self, auth: AuthSession, address_id: int) -> None:
        address, addresses = await self._get_active(auth, address_id)
        if len(addresses) <= 1:
            raise ValidationFailed("You need at least one address")
        if address.is_default:
            raise ValidationFailed("Set another address as default before deleting this one")

        await self.address_repo.deactivate(auth.user_id, address_id)
        logger.info("address %s deactivated for %s", address_id, auth.user_id)
        self.notices.push("Address removed")

    async def set_default(self, auth: AuthSession, address_id: int) -> list[Address]:
        await self._get_active(auth, address_id)
        await self.address_repo.set_default(auth.user_id, address_id)
        return await self.address_repo.list_active(auth.user_id)
