"""
Server-side cart and wishlist.

A ``CartService`` is bound to one cart id and persists through a small
key-value store. The store is built once per application (Redis when
``REDIS_URL`` is configured, an in-process TTL cache otherwise) and handed to
every request that needs it.
"""

import json
from abc import ABC, abstractmethod
import threading
from typing import Any, List, Optional
from cachetools import TTLCache
import redis
from storefront.core_settings import Settings
from storefront.application.schemas import CheckoutItem
from shared.core import get_logger

logger = get_logger(__name__)

class KeyValueStore(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    def ping(self) -> bool:
        return True

class MemoryStore(KeyValueStore):
    def __init__(self, ttl: int, maxsize: int = 10000):
        self._cache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            value = self._cache.get(key)
        return json.loads(value) if value is not None else None

    def set(self, key, value):
        with self._lock:
            self._cache[key] = json.dumps(value)

    def delete(self, key):
        with self._lock:
            self._cache.pop(key, None)

class RedisStore(KeyValueStore):
    def __init__(self, client: redis.Redis, ttl: int):
        self.client = client
        self.ttl = ttl

    def get(self, key):
        value = self.client.get(key)
        return json.loads(value) if value is not None else None

    def set(self, key, value):
        self.client.setex(key, self.ttl, json.dumps(value))

    def delete(self, key):
        self.client.delete(key)

    def ping(self):
        return bool(self.client.ping())

def build_store(settings: Settings) -> KeyValueStore:
    if settings.REDIS_URL:
        logger.info("Cart store backed by Redis")
        return RedisStore(redis.from_url(settings.REDIS_URL, decode_responses=True), settings.CART_TTL_SECONDS)
    return MemoryStore(settings.CART_TTL_SECONDS)

def _same_line(item: dict, product_id: str, size: str, color: str) -> bool:
    return item["productId"] == product_id and item["size"] == size and item["color"] == color

class CartService:
    def __init__(self, store: KeyValueStore, cart_id: str):
        self.store = store
        self.cart_id = cart_id

    @property
    def _cart_key(self) -> str:
        return f"cart:{self.cart_id}"

    @property
    def _wishlist_key(self) -> str:
        return f"wishlist:{self.cart_id}"

    def items(self) -> List[dict]:
        return self.store.get(self._cart_key) or []

    def _save(self, items: List[dict]) -> List[dict]:
        self.store.set(self._cart_key, items)
        return items

    def add(self, product_id: str, size: str, color: str, quantity: int, unit_price: int, name: str = "") -> List[dict]:
        """Add a line, merging into an existing one and refreshing its unit price."""
        items = self.items()
        for item in items:
            if _same_line(item, product_id, size, color):
                item["quantity"] += quantity
                item["unitPrice"] = unit_price
                return self._save(items)
        items.append({
            "productId": product_id,
            "name": name,
            "size": size,
            "color": color,
            "quantity": quantity,
            "unitPrice": unit_price,
        })
        return self._save(items)

    def remove(self, product_id: str, size: str, color: str) -> List[dict]:
        return self._save([i for i in self.items() if not _same_line(i, product_id, size, color)])

    def update_quantity(self, product_id: str, size: str, color: str, quantity: int) -> List[dict]:
        if quantity <= 0:
            return self.remove(product_id, size, color)
        items = self.items()
        for item in items:
            if _same_line(item, product_id, size, color):
                item["quantity"] = quantity
        return self._save(items)

    def clear(self):
        self.store.delete(self._cart_key)

    def total(self) -> int:
        return sum(i["unitPrice"] * i["quantity"] for i in self.items())

    def count(self) -> int:
        return sum(i["quantity"] for i in self.items())

    def summary(self) -> dict:
        items = self.items()
        return {
            "cartId": self.cart_id,
            "items": items,
            "total": sum(i["unitPrice"] * i["quantity"] for i in items),
            "count": sum(i["quantity"] for i in items),
        }

    def checkout_items(self) -> List[CheckoutItem]:
        return [
            CheckoutItem(product_id=i["productId"], size=i["size"], color=i["color"], quantity=i["quantity"])
            for i in self.items()
        ]

    def wishlist(self) -> List[str]:
        return self.store.get(self._wishlist_key) or []

    def toggle_wishlist(self, product_id: str) -> List[str]:
        wishlist = self.wishlist()
        if product_id in wishlist:
            wishlist = [p for p in wishlist if p != product_id]
        else:
            wishlist.append(product_id)
        self.store.set(self._wishlist_key, wishlist)
        return wishlist
