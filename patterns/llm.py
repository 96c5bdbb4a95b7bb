# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie LLM — transport to the text collaborators via Ollama.

Two collaborators sit behind this module:
- the dream classifier (themes / emotions / symbols as JSON)
- the narrative insight generator (vip only, hedged advisory text)

Every call is time-bounded. Transport problems raise CollaboratorUnavailable;
callers turn that into a neutral result. Replies come back in one of two
shapes and both are collapsed by decode_payload():

    {"text": "..."}  or Ollama's {"response": "..."}    direct text
    {"steps": [{"text": "..."}, ...]}                   reasoning steps, last one wins
"""

import json
import logging
import re
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from patterns.schemas import CollaboratorUnavailable, MalformedCollaboratorResponse

logger = logging.getLogger("reverie.llm")

# Don't spam connection attempts when Ollama is down
_CHECK_INTERVAL = 60

# A collaborator takes a prompt and returns a raw reply payload (or None)
Collaborator = Callable[[str], Optional[Dict[str, Any]]]


# ============================================================================
# Normalized decode — tagged success / failure
# ============================================================================

@dataclass(frozen=True)
class Decoded:
    """The collaborator produced usable text."""
    text: str


@dataclass(frozen=True)
class NoUsableResponse:
    """The collaborator replied with nothing we can use."""
    reason: str


DecodeResult = Union[Decoded, NoUsableResponse]


def _text_of(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def decode_payload(payload: Any) -> DecodeResult:
    """Collapse either reply shape into Decoded(text) or NoUsableResponse(reason)."""
    if payload is None:
        return NoUsableResponse("no response object")
    if not isinstance(payload, dict):
        return NoUsableResponse(f"unrecognized payload type {type(payload).__name__}")

    direct = _text_of(payload.get("text")) or _text_of(payload.get("response"))
    if direct:
        return Decoded(direct)

    steps = payload.get("steps")
    if isinstance(steps, list):
        if not steps:
            return NoUsableResponse("steps array is empty")
        last = steps[-1]
        text = _text_of(last.get("text")) if isinstance(last, dict) else ""
        if text:
            return Decoded(text)
        return NoUsableResponse(f"last of {len(steps)} steps has no text")

    keys = ", ".join(sorted(payload)) or "none"
    return NoUsableResponse(f"no text or steps (keys: {keys})")


_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence wrappers (```json ... ```)."""
    return _FENCE.sub("", text).strip()


def decode_json_object(text: str) -> Dict[str, Any]:
    """
    Strict JSON decode of a collaborator reply into a dict.

    Falls back to the outermost {...} span when the model wrapped the object
    in prose. Raises MalformedCollaboratorResponse when neither parses.
    """
    cleaned = strip_code_fences(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise MalformedCollaboratorResponse(f"not JSON: {cleaned[:100]!r}")
        try:
            data = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError as e:
            raise MalformedCollaboratorResponse(f"not JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedCollaboratorResponse(f"expected object, got {type(data).__name__}")
    return data


# ============================================================================
# Ollama transport
# ============================================================================

class OllamaClient:
    """Minimal Ollama /api/generate client with a cached availability probe."""

    def __init__(self, base_url: str = "http://localhost:11434", timeout: float = 30):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._last_check = 0.0
        self._last_available = False

    def is_available(self) -> bool:
        """Check if Ollama is running. Cached for _CHECK_INTERVAL seconds."""
        now = time.time()
        if now - self._last_check < _CHECK_INTERVAL:
            return self._last_available

        self._last_check = now
        try:
            req = urllib.request.Request(f"{self.base_url}/api/tags", method="GET")
            with urllib.request.urlopen(req, timeout=5) as resp:
                self._last_available = resp.status == 200
        except (urllib.error.URLError, TimeoutError, OSError):
            self._last_available = False
        return self._last_available

    def generate(
        self,
        prompt: str,
        model: str,
        max_tokens: int = 256,
        temperature: float = 0.3,
        system: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        POST /api/generate and return the parsed reply payload.

        Raises:
            CollaboratorUnavailable: Ollama down, timed out, or HTTP error.
            MalformedCollaboratorResponse: reply body isn't JSON.
        """
        if not self.is_available():
            raise CollaboratorUnavailable(f"Ollama not reachable at {self.base_url}")

        payload = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": temperature, "num_predict": max_tokens},
        }
        if system:
            payload["system"] = system

        req = urllib.request.Request(
            f"{self.base_url}/api/generate",
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=timeout or self.timeout) as resp:
                body = resp.read().decode("utf-8")
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            # URLError covers HTTPError
            raise CollaboratorUnavailable(f"Ollama generate failed: {e}") from e

        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise MalformedCollaboratorResponse(f"Ollama body not JSON: {e}") from e

    def collaborator(
        self,
        model: str,
        max_tokens: int,
        timeout: Optional[float] = None,
        temperature: float = 0.3,
    ) -> Collaborator:
        """Bind model settings into a prompt -> payload callable."""
        def _call(prompt: str) -> Optional[Dict[str, Any]]:
            return self.generate(
                prompt, model=model, max_tokens=max_tokens,
                temperature=temperature, timeout=timeout,
            )
        return _call

    def status(self) -> Dict[str, Any]:
        return {"available": self.is_available(), "url": self.base_url}
