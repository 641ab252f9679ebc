"""
vendor_catalogue.py
--------------------
Vendor signature lookup layer.

Loads the vendor_catalogue table from config.yaml and compiles each entry
into a VendorSignature. This is the bridge between free transaction text
and the known-payee space.

Matching is pure first-match-wins: vendors in declaration order, then each
vendor's patterns in declaration order. No scoring, no best-match search.

Catalogue updates happen in config.yaml; no code changes required.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from config.config_loader import get_vendor_catalogue, get_lifecycle_config
from detection.models import VendorSignature

logger = logging.getLogger(__name__)


def build_signature(entry: Dict[str, Any], default_cadence: str = "monthly") -> Optional[VendorSignature]:
    """
    Compiles one catalogue entry.

    Patterns that fail to compile are logged and dropped. Returns None when
    the entry is left with no usable pattern.
    """
    compiled = []
    for raw in entry.get("patterns", []):
        try:
            compiled.append(re.compile(raw, re.IGNORECASE))
        except re.error as exc:
            logger.warning(f"Skipping invalid pattern for vendor '{entry.get('vendor_key')}': {raw!r} ({exc})")

    if not compiled:
        logger.warning(f"Vendor '{entry.get('vendor_key')}' has no usable patterns, skipped.")
        return None

    return VendorSignature(
        vendor_key=entry["vendor_key"],
        display_name=entry.get("display_name", entry["vendor_key"]),
        patterns=tuple(compiled),
        cadence=entry.get("cadence", default_cadence),
        month_without_year=bool(entry.get("month_without_year", False)),
    )


class VendorCatalogue:
    """
    Ordered lookup from normalized text → VendorSignature.

    Built once at init from the config catalogue (or an explicit entry list,
    for tests and callers with their own rules). Read-only afterwards.
    """

    def __init__(self, entries: List[Dict[str, Any]] | None = None):
        self._signatures: List[VendorSignature] = []
        self._by_key: Dict[str, VendorSignature] = {}
        self._load(get_vendor_catalogue() if entries is None else entries)

    def _load(self, entries: List[Dict[str, Any]]) -> None:
        """Builds the ordered signature list."""
        default_cadence = get_lifecycle_config()["default_cadence"]
        for entry in entries:
            signature = build_signature(entry, default_cadence)
            if signature is None:
                continue
            # Duplicate keys: the earlier declaration keeps precedence
            if signature.vendor_key in self._by_key:
                logger.warning(f"Duplicate vendor key '{signature.vendor_key}' ignored.")
                continue
            self._signatures.append(signature)
            self._by_key[signature.vendor_key] = signature

    def match(self, text: str) -> Optional[VendorSignature]:
        """
        Returns the first vendor whose any pattern matches `text`.

        Empty text never matches.
        """
        if not text:
            return None
        for signature in self._signatures:
            for pattern in signature.patterns:
                if pattern.search(text):
                    return signature
        return None

    def get(self, vendor_key: str) -> Optional[VendorSignature]:
        """Returns the signature for a vendor key, or None."""
        return self._by_key.get(vendor_key)

    @property
    def signatures(self) -> List[VendorSignature]:
        return list(self._signatures)

    def __len__(self) -> int:
        return len(self._signatures)

    def __repr__(self) -> str:
        return f"VendorCatalogue(vendors={[s.vendor_key for s in self._signatures]})"
