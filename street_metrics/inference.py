import base64
from typing import Any, Optional

import httpx

from . import prompts
from .errors import ProtocolViolation, TransportFailure
from .filename_time import CaptureTime
from .schema import TOOL_NAME, tool_definition

ANTHROPIC_VERSION = "2023-06-01"


def encode_image(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def build_analysis_request(
    image_bytes: bytes,
    media_type: str,
    filename: str,
    *,
    model: str,
    max_tokens: int,
    timezone: str,
    capture: Optional[CaptureTime],
) -> dict:
    """Assemble a Messages API payload that can only be answered via the tool."""
    return {
        "model": model,
        "max_tokens": max_tokens,
        "messages": [
            {
                "role": "user",
                "content": [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": media_type,
                            "data": encode_image(image_bytes),
                        },
                    },
                    {
                        "type": "text",
                        "text": prompts.scene_analysis_instruction(filename, timezone, capture),
                    },
                ],
            }
        ],
        "tools": [tool_definition()],
        "tool_choice": {"type": "tool", "name": TOOL_NAME},
    }


def extract_tool_input(response: dict, tool_name: str = TOOL_NAME) -> Any:
    content = response.get("content") if isinstance(response, dict) else None
    for block in content or []:
        if not isinstance(block, dict):
            continue
        if block.get("type") == "tool_use" and block.get("name") == tool_name:
            return block.get("input")
    stop_reason = response.get("stop_reason") if isinstance(response, dict) else None
    raise ProtocolViolation(
        f"service did not honor structured-response contract: no {tool_name} tool_use block "
        f"(stop_reason={stop_reason})"
    )


def _token_count(usage: dict, key: str) -> int:
    value = usage.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return value


def extract_usage(response: dict) -> dict[str, int]:
    """Token counts from the response; anything missing or malformed counts as 0."""
    usage = response.get("usage") if isinstance(response, dict) else None
    if not isinstance(usage, dict):
        usage = {}
    input_tokens = _token_count(usage, "input_tokens")
    output_tokens = _token_count(usage, "output_tokens")
    return {
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "total_tokens": input_tokens + output_tokens,
    }


class AnthropicInvoker:
    """One synchronous Messages API round trip per call; never retries."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.anthropic.com",
        timeout_sec: float = 60.0,
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self.client = client or httpx.Client(timeout=timeout_sec)
        self.headers = {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    @classmethod
    def from_settings(cls, settings, client: Optional[httpx.Client] = None) -> "AnthropicInvoker":
        return cls(
            settings.anthropic_api_key,
            settings.anthropic_base_url,
            settings.anthropic_timeout_sec,
            client=client,
        )

    def invoke(self, payload: dict) -> dict:
        try:
            resp = self.client.post(
                f"{self.base_url}/v1/messages",
                json=payload,
                headers=self.headers,
                timeout=self.timeout_sec,
            )
            resp.raise_for_status()
            result = resp.json()
        except httpx.TimeoutException as exc:
            raise TransportFailure(f"inference request timed out after {self.timeout_sec}s") from exc
        except httpx.HTTPStatusError as exc:
            raise TransportFailure(
                f"inference service returned {exc.response.status_code}: {exc.response.text}",
                status=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportFailure(f"inference request failed: {exc}") from exc
        except ValueError as exc:
            raise TransportFailure("inference service returned a non-JSON body") from exc
        return result

    def close(self) -> None:
        self.client.close()
