"""
State notary registry client.

Looks a notary up by commission number and name:

    GET {base_url}/verify?commission=1234567&name=Jane+Doe
    Authorization: Bearer <api key>
    → {"valid": true}

An instance is a ``NotaryVerifier`` and can be handed to
``validate_notary`` or ``DocumentValidationPipeline``. Transport errors,
non-2xx responses and unreadable bodies all raise NotaryLookupError.
"""

from __future__ import annotations

import logging

import httpx

from .config import Settings
from .exceptions import NotaryLookupError

logger = logging.getLogger(__name__)


class StateNotaryRegistry:
    """Synchronous registry client; safe to share across validator threads."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"), headers=headers, timeout=timeout
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> StateNotaryRegistry | None:
        """None when no registry URL is configured."""
        if not settings.notary_api_url:
            return None
        return cls(
            settings.notary_api_url,
            api_key=settings.notary_api_key,
            timeout=settings.notary_api_timeout,
        )

    def __call__(self, commission_number: str, notary_name: str) -> bool:
        try:
            response = self._client.get(
                "/verify", params={"commission": commission_number, "name": notary_name}
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise NotaryLookupError(
                f"State notary registry unavailable: {exc}",
                {"error_type": type(exc).__name__},
            ) from exc
        except ValueError as exc:
            raise NotaryLookupError("State notary registry returned an unreadable response") from exc

        valid = isinstance(payload, dict) and payload.get("valid") is True
        logger.info("Notary registry lookup for commission %s: valid=%s", commission_number, valid)
        return valid

    def close(self) -> None:
        self._client.close()
