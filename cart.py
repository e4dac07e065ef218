"""
Client-side shopping cart

The cart never reaches the server. It lives as a JSON array under a fixed
key in a small key/value store shaped like browser local storage, and every
change is written back in a single call.

Two processes sharing one storage are not coordinated: each does its own
read-modify-write and the last writer wins.
"""
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from schemas import CartItem, Product

logger = logging.getLogger(__name__)

CART_STORAGE_KEY = "cart"
FREE_SHIPPING_THRESHOLD = 300
SHIPPING_FEE = 20

_cart_adapter = TypeAdapter(List[CartItem])


class ClientStorage(ABC):
    """String key/value store with change listeners."""

    def __init__(self):
        self._listeners: List[Callable[[str], None]] = []

    def subscribe(self, listener: Callable[[str], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _notify(self, key: str):
        for listener in list(self._listeners):
            listener(key)

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set_item(self, key: str, value: str):
        ...

    @abstractmethod
    def remove_item(self, key: str):
        ...


class MemoryStorage(ClientStorage):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        super().__init__()
        self._data = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str):
        self._data[key] = value
        self._notify(key)

    def remove_item(self, key: str):
        if self._data.pop(key, None) is not None:
            self._notify(key)


class FileStorage(ClientStorage):
    """Keeps every key in one JSON object on disk.

    Writes go to a temporary file that replaces the original, so a reader
    sees either the old or the new content.
    """

    def __init__(self, path):
        super().__init__()
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except ValueError as exc:
            logger.warning("Storage file %s is unreadable, starting empty: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, str]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp, self.path)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get_item(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str):
        data = self._load()
        data[key] = value
        self._save(data)
        self._notify(key)

    def remove_item(self, key: str):
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)
            self._notify(key)


class Cart:
    def __init__(self, storage: ClientStorage, key: str = CART_STORAGE_KEY):
        self.storage = storage
        self.key = key

    def items(self) -> List[CartItem]:
        raw = self.storage.get_item(self.key)
        if not raw:
            return []
        try:
            return _cart_adapter.validate_json(raw)
        except ValidationError as exc:
            logger.error("Cart in storage is corrupted, resetting it: %s", exc.errors()[:1])
            self.storage.remove_item(self.key)
            return []

    def _save(self, items: List[CartItem]):
        payload = _cart_adapter.dump_json(items, by_alias=True)
        self.storage.set_item(self.key, payload.decode("utf-8"))

    def _find(self, items: List[CartItem], key) -> int:
        for index, item in enumerate(items):
            if item.line_key() == key:
                return index
        return -1

    def add_to_cart(
        self,
        product: Product,
        quantity: int = 1,
        custom_name: Optional[str] = None,
        custom_modality: Optional[str] = None,
        selected_color: Optional[str] = None,
    ) -> CartItem:
        """Add `quantity` units, merging into a line with identical customization.

        Stock is not checked here; callers cap the quantity beforehand.
        """
        if quantity < 1:
            raise ValueError("quantity must be at least 1")
        items = self.items()
        index = self._find(items, (product.id, custom_name, custom_modality, selected_color))
        if index >= 0:
            items[index].quantity += quantity
            line = items[index]
        else:
            line = CartItem(
                product_id=product.id,
                quantity=quantity,
                product=product.model_copy(deep=True),
                custom_name=custom_name,
                custom_modality=custom_modality,
                selected_color=selected_color,
            )
            items.append(line)
        self._save(items)
        return line

    def update_quantity(
        self,
        product_id: str,
        quantity: int,
        custom_name: Optional[str] = None,
        custom_modality: Optional[str] = None,
        selected_color: Optional[str] = None,
    ) -> Optional[CartItem]:
        if quantity < 1:
            raise ValueError("quantity must be at least 1")
        items = self.items()
        index = self._find(items, (product_id, custom_name, custom_modality, selected_color))
        if index < 0:
            return None
        items[index].quantity = quantity
        self._save(items)
        return items[index]

    def remove_item(
        self,
        product_id: str,
        custom_name: Optional[str] = None,
        custom_modality: Optional[str] = None,
        selected_color: Optional[str] = None,
    ) -> bool:
        items = self.items()
        index = self._find(items, (product_id, custom_name, custom_modality, selected_color))
        if index < 0:
            return False
        del items[index]
        self._save(items)
        return True

    def clear_cart(self):
        self._save([])

    def subtotal(self) -> float:
        return round(sum(item.product.final_price * item.quantity for item in self.items()), 2)

    def shipping(self) -> float:
        if not self.items():
            return 0
        return 0 if self.subtotal() >= FREE_SHIPPING_THRESHOLD else SHIPPING_FEE

    def total(self) -> float:
        return round(self.subtotal() + self.shipping(), 2)
