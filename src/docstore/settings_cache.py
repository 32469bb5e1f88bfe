"""
Short-lived in-memory cache for settings collections.

Settings are read on nearly every storefront request and change rarely, so
the first document of a settings collection is kept for a fixed TTL. A
missing or unreadable collection degrades to defaults.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .errors import StorageError
from .service import CollectionService

logger = logging.getLogger(__name__)

STORE_SETTINGS = "store_settings"
SITE_SETTINGS = "site_settings"

STORE_SETTINGS_DEFAULTS: Dict[str, Any] = {
    "businessName": "Your Store",
    "tvaNumber": "",
    "address": "",
    "vatPercentage": 20,
    "vatIncludedInPrice": True,
    "applyVatAtCheckout": True,
    "paymentMethods": {
        "cardPayments": True,
        "stripePublicKey": "",
        "stripeSecretKey": "",
        "bankTransfer": False,
        "payOnDelivery": False,
        "bankTransferDetails": {
            "bankName": "",
            "accountHolder": "",
            "iban": "",
            "bic": "",
            "additionalInfo": "",
        },
    },
    "freeShippingEnabled": True,
    "freeShippingThreshold": 50,
    "internationalShipping": True,
    "allowedCountries": ["FRA", "DEU", "ITA", "ESP", "BEL", "NLD", "LUX"],
    "bannedCountries": [],
    "currency": "EUR",
    "carriers": [],
}

SECRET_PAYMENT_KEYS = ("stripeSecretKey",)


class SettingsCache:
    def __init__(
        self,
        service: CollectionService,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service = service
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[float, Dict[str, Any]]] = {}

    def get(
        self, collection: str, defaults: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """First document of ``collection`` laid over ``defaults`` (shallow)."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(collection)
            if entry is not None and now - entry[0] < self.ttl_seconds:
                return copy.deepcopy(entry[1])

        try:
            docs = self.service.read_all(collection)
        except StorageError as exc:
            logger.warning("reading %s failed, using defaults: %s", collection, exc)
            return copy.deepcopy(dict(defaults or {}))

        settings = {**copy.deepcopy(dict(defaults or {})), **(docs[0] if docs else {})}
        with self._lock:
            self._entries[collection] = (now, settings)
        return copy.deepcopy(settings)

    def clear(self, collection: Optional[str] = None) -> None:
        with self._lock:
            if collection is None:
                self._entries.clear()
            else:
                self._entries.pop(collection, None)

    def store_settings(self) -> Dict[str, Any]:
        return self.get(STORE_SETTINGS, STORE_SETTINGS_DEFAULTS)


def public_store_settings(settings: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy of ``settings`` without secret payment keys."""
    public = dict(settings)
    methods = public.get("paymentMethods")
    if isinstance(methods, Mapping):
        public["paymentMethods"] = {
            k: v for k, v in methods.items() if k not in SECRET_PAYMENT_KEYS
        }
    return public
