"""
Client for the hosted text-generation endpoint
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from app.core.config import AppConfig
from app.core.errors import UpstreamError

logger = logging.getLogger(__name__)


def build_request_body(system_instruction: str, user_prompt: str) -> Dict[str, Any]:
    return {
        "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
        "system_instruction": {"role": "system", "parts": [{"text": system_instruction}]},
    }


def extract_text(payload: Any) -> str:
    """Return candidates[0].content.parts[0].text, or "" when any step is missing"""
    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return ""
    return text if isinstance(text, str) else ""


class AIContentClient:
    """Sends a system instruction plus a user prompt and returns the first candidate's text"""

    def __init__(
        self,
        config: AppConfig,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = config.api_endpoint
        self.api_key = config.credentials.get("api_key")
        # 0 or None means wait indefinitely
        self.timeout = timeout or None
        self._http_client = http_client

    async def generate(
        self,
        system_instruction: str,
        user_prompt: str,
        auth_token: Optional[str] = None,
    ) -> str:
        headers = {"Content-Type": "application/json"}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        params = {"key": self.api_key} if self.api_key else None
        body = build_request_body(system_instruction, user_prompt)

        logger.info(f"Calling AI endpoint (prompt length {len(user_prompt)})")
        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self.endpoint, json=body, headers=headers, params=params, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(
                        self.endpoint, json=body, headers=headers, params=params, timeout=self.timeout
                    )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"AI endpoint request failed: {e}")
            raise UpstreamError(f"AI request failed: {e}") from e

        if not response.is_success:
            logger.error(f"AI endpoint returned HTTP {response.status_code}")
            raise UpstreamError(
                f"AI request failed with HTTP status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError:
            logger.warning("AI endpoint returned a non-JSON body")
            return ""
        return extract_text(payload)
