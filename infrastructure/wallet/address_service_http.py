from __future__ import annotations

import logging

import requests

from domain.errors import Unavailable
from domain.repositories import AddressDeriver


logger = logging.getLogger(__name__)


class HttpAddressDeriver(AddressDeriver):
    """
    Client for the external wallet service that hands out deposit addresses.

    Contract: ``POST {base_url}/generate-address`` with ``{"userId": ...}``
    answers ``{"depositAddress": "addr1..."}``. HD derivation happens on
    the other side.
    """

    def __init__(self, base_url: str, timeout: float = 10.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def derive_address(self, user_key: str) -> str:
        endpoint = f"{self._base_url}/generate-address"
        try:
            response = requests.post(
                endpoint,
                json={"userId": user_key},
                timeout=self._timeout,
            )
        except requests.exceptions.RequestException as exc:
            logger.warning("Address service request failed: %s", exc)
            raise Unavailable("Address service unavailable.") from exc

        if response.status_code != 200:
            raise Unavailable(f"Address service returned HTTP {response.status_code}.")

        try:
            body = response.json()
        except ValueError as exc:
            raise Unavailable("Address service returned invalid JSON.") from exc

        address = body.get("depositAddress") if isinstance(body, dict) else None
        if not isinstance(address, str) or not address.strip():
            raise Unavailable("Address service did not return an address.")
        return address.strip()
