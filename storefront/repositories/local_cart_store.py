# storefront/repositories/local_cart_store.py
import logging
import os
import re
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from storefront.models.cart import CartItem

logger = logging.getLogger(__name__)

_items_adapter = TypeAdapter(list[CartItem])


def snapshot_filename(storage_key: str) -> str:
    """
    Map a storage key like "matica:cart:v1" to "matica-cart-v1.json".
    """
    return re.sub(r"[^A-Za-z0-9_.-]+", "-", storage_key).strip("-") + ".json"


class LocalCartStore:
    """
    Device-local snapshot of the cart (the guest cart, and the recovery
    copy for signed-in shoppers).

    - load() never raises: absent or corrupt data is an empty cart.
    - save() overwrites the whole snapshot; last writer wins.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    @classmethod
    def for_session(cls, storage_dir: str, session_id: str, storage_key: str) -> "LocalCartStore":
        return cls(Path(storage_dir) / session_id / snapshot_filename(storage_key))

    def load(self) -> list[CartItem]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.debug("local cart unreadable at %s: %s", self.path, exc)
            return []

        try:
            return _items_adapter.validate_json(raw)
        except (ValidationError, ValueError) as exc:
            logger.debug("local cart snapshot corrupt at %s: %s", self.path, exc)
            return []

    def save(self, items: list[CartItem]) -> None:
        # Write to a sibling temp file then rename so readers never see
        # a half-written snapshot.
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(_items_adapter.dump_json(items))
            os.replace(tmp, self.path)
        except OSError as exc:
            logger.warning("persisting local cart to %s failed: %s", self.path, exc)
