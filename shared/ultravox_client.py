"""
Ultravox client: call creation and flow data recovery for in-progress calls.

When a stage-change request arrives for a call the session store does not
know (process restart, another instance registered it), the flow graph can be
re-derived from the call's own metadata, where it was serialized at call
creation under ``metadata.flowData``.
"""

import json
import logging
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shared.config import get_settings

logger = logging.getLogger(__name__)


class UltravoxClient:
    """Client for the Ultravox REST API (calls and their metadata)."""

    def __init__(self):
        settings = get_settings()
        self.api_url = settings.ULTRAVOX_API_URL.rstrip("/")
        self.api_key = settings.ULTRAVOX_API_KEY

        self.headers = {
            "X-API-Key": self.api_key,
            "Content-Type": "application/json",
        }

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _get_call(self, call_id: str) -> dict[str, Any] | None:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{self.api_url}/calls/{call_id}",
                headers=self.headers,
                timeout=10.0,
            )

            if response.status_code != 200:
                logger.warning(
                    f"Could not fetch call {call_id} from Ultravox: HTTP {response.status_code}"
                )
                return None

            return response.json()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def create_call(self, payload: dict[str, Any]) -> dict[str, Any]:
        """
        Create an Ultravox call.

        Only transport errors are retried; an HTTP error status is raised
        as-is so a call is never created twice.

        Args:
            payload: Call creation body (see build_call_request)

        Returns:
            Created call dict (``callId``, ``joinUrl``, ...)

        Raises:
            httpx.HTTPError: If the request fails or Ultravox rejects it
        """
        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    f"{self.api_url}/calls",
                    json=payload,
                    headers=self.headers,
                    timeout=10.0,
                )
                response.raise_for_status()

                call = response.json()
                logger.info(f"Created Ultravox call {call.get('callId')}")
                return call

            except httpx.HTTPError as e:
                logger.error(f"HTTP error creating Ultravox call: {e}")
                raise

    async def fetch_flow_data(self, call_id: str) -> dict[str, Any] | None:
        """
        Fetch the raw flow graph stored in a call's metadata.

        Args:
            call_id: Ultravox call ID

        Returns:
            Decoded flow data dict, or None if unavailable
        """
        if not self.is_configured:
            logger.debug("Ultravox API key not configured, skipping flow metadata fetch")
            return None

        try:
            call_data = await self._get_call(call_id)
        except httpx.HTTPError as e:
            logger.error(f"HTTP error fetching call {call_id} from Ultravox: {e}")
            return None

        if not call_data:
            return None

        raw_flow = (call_data.get("metadata") or {}).get("flowData")
        if not raw_flow:
            logger.info(f"Call {call_id} carries no flowData metadata")
            return None

        try:
            return json.loads(raw_flow) if isinstance(raw_flow, str) else raw_flow
        except json.JSONDecodeError as e:
            logger.error(f"Call {call_id} has malformed flowData metadata: {e}")
            return None
