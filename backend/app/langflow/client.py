"""Langflow workflow client — upload an image, run the flow, extract the result.

Two calls per refinement:
  1. POST {base}/api/v2/files          (multipart, 60s) → {"path": ...}
  2. POST {base}/api/v1/run/{flow_id}  (JSON, 180s)     → outputs[0].outputs[0].results.message.text
     where the text is itself JSON: {"status": "success", "image_data_uri": "data:image/..."}
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import httpx

from app.config import RuntimeConfig
from app.errors import InvocationError, RequestTimeoutError, UploadError
from app.imaging.codec import DATA_URI_PREFIX
from app.models.artifacts import BinaryImage

logger = logging.getLogger(__name__)

REPLICA_INSTRUCTION = "Create the exact replica of this image, don't change a thing."

UPLOAD_TIMEOUT_S = 60.0
INVOKE_TIMEOUT_S = 180.0

_MAX_LOGGED_BODY = 500


class Refiner(Protocol):
    """Anything that turns one image into the next (real client or a test fake)."""

    async def refine(self, image: BinaryImage) -> str: ...


def extract_image_data_uri(payload: Any) -> str:
    """Dig the data URI out of a run response. Raises InvocationError."""
    try:
        message_text = payload["outputs"][0]["outputs"][0]["results"]["message"]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise InvocationError(
            "Invalid response from Langflow: missing message text",
            detail=f"{type(e).__name__}: {e}",
        ) from e
    if not isinstance(message_text, str):
        raise InvocationError("Invalid response from Langflow: message text is not a string")

    try:
        parsed = json.loads(message_text)
    except json.JSONDecodeError as e:
        raise InvocationError(
            "Invalid response from Langflow: message text is not JSON",
            detail=message_text[:_MAX_LOGGED_BODY],
        ) from e
    if not isinstance(parsed, dict):
        raise InvocationError("Invalid response from Langflow: unexpected message shape")

    image_data_uri = parsed.get("image_data_uri")
    if parsed.get("status") != "success" or not image_data_uri:
        raise InvocationError(
            "Invalid response from Langflow: Missing required data",
            detail=f"status={parsed.get('status')!r}",
        )
    if not isinstance(image_data_uri, str) or not image_data_uri.startswith(DATA_URI_PREFIX):
        raise InvocationError("Invalid image data received from Langflow")
    return image_data_uri


class LangflowClient:
    """Refinement client for one Langflow flow."""

    def __init__(
        self,
        config: RuntimeConfig,
        api_key: str = "",
        upload_timeout_s: float = UPLOAD_TIMEOUT_S,
        invoke_timeout_s: float = INVOKE_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.api_key = api_key
        self.upload_timeout_s = upload_timeout_s
        self.invoke_timeout_s = invoke_timeout_s
        self._transport = transport

    @property
    def files_url(self) -> str:
        return f"{self.config.workflow_base_url}/api/v2/files"

    @property
    def run_url(self) -> str:
        return f"{self.config.workflow_base_url}/api/v1/run/{self.config.flow_id}"

    def _headers(self) -> dict[str, str]:
        return {"x-api-key": self.api_key} if self.api_key else {}

    def _check_configured(self) -> None:
        missing = [
            name
            for name, value in (
                ("LANGFLOW_API_BASE_URL", self.config.workflow_base_url),
                ("LANGFLOW_FLOW_ID", self.config.flow_id),
            )
            if not value
        ]
        if missing:
            raise InvocationError(f"Langflow is not configured: set {', '.join(missing)}")

    async def refine(self, image: BinaryImage) -> str:
        """Upload ``image``, run the flow on it, return the result data URI."""
        self._check_configured()
        async with httpx.AsyncClient(transport=self._transport, headers=self._headers()) as client:
            path = await self.upload(client, image)
            return await self.invoke(client, path)

    async def upload(self, client: httpx.AsyncClient, image: BinaryImage) -> str:
        logger.info(
            "Uploading %s (%s, %d bytes) to Langflow", image.filename, image.media_type, image.size
        )
        try:
            response = await client.post(
                self.files_url,
                params={"stream": "false"},
                files={"file": (image.filename, image.data, image.media_type)},
                timeout=self.upload_timeout_s,
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(
                f"Upload timed out after {self.upload_timeout_s:g} seconds", detail=str(e)
            ) from e
        except httpx.HTTPError as e:
            raise UploadError(f"File upload failed: {e}", detail=repr(e)) from e

        if not response.is_success:
            logger.warning("Upload not OK: %d %s", response.status_code, response.reason_phrase)
            raise UploadError(
                f"File upload failed (Status {response.status_code}): "
                f"{response.reason_phrase or 'No error details available'}",
                detail=response.text[:_MAX_LOGGED_BODY],
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UploadError("Invalid upload response: not JSON", detail=response.text[:_MAX_LOGGED_BODY]) from e
        path = data.get("path") if isinstance(data, dict) else None
        if not path:
            raise UploadError("Invalid upload response: Missing file path", detail=str(data)[:_MAX_LOGGED_BODY])

        logger.info("Upload complete: %s", path)
        return str(path)

    def build_run_request(self, uploaded_path: str) -> dict[str, Any]:
        return {
            "input_value": REPLICA_INSTRUCTION,
            "output_type": "chat",
            "input_type": "chat",
            "tweaks": {
                self.config.image_component_key: {"path": [uploaded_path]},
            },
        }

    async def invoke(self, client: httpx.AsyncClient, uploaded_path: str) -> str:
        logger.info("Running flow %s on %s", self.config.flow_id, uploaded_path)
        try:
            response = await client.post(
                self.run_url,
                params={"stream": "false"},
                json=self.build_run_request(uploaded_path),
                timeout=self.invoke_timeout_s,
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(
                f"Request timed out after {self.invoke_timeout_s:g} seconds", detail=str(e)
            ) from e
        except httpx.HTTPError as e:
            raise InvocationError(f"API request failed: {e}", detail=repr(e)) from e

        if not response.is_success:
            body = response.text[:_MAX_LOGGED_BODY]
            logger.warning("Run not OK: %d %s: %s", response.status_code, response.reason_phrase, body)
            raise InvocationError(
                f"API request failed (Status {response.status_code}): "
                f"{response.reason_phrase or 'No error details available'}",
                detail=body,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise InvocationError(
                "Invalid response from Langflow: not JSON", detail=response.text[:_MAX_LOGGED_BODY]
            ) from e

        data_uri = extract_image_data_uri(payload)
        logger.info("Flow returned image (%d chars)", len(data_uri))
        return data_uri
