import base64
import os
from typing import Any, Dict, List, Optional

import aiohttp

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


class GeminiAPIError(Exception):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` block from a model reply."""
    clean = text.strip()
    if clean.startswith("```"):
        first_newline = clean.find("\n")
        clean = clean[first_newline + 1:] if first_newline != -1 else clean[3:]
        if clean.rstrip().endswith("```"):
            clean = clean.rstrip()[:-3]
    return clean.strip()


class GeminiClient:
    """Minimal Gemini generateContent client over REST."""

    def __init__(self, config: Dict[str, Any], api_key: Optional[str] = None):
        gemini_config = config.get("gemini", {})
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        self.base_url = gemini_config.get("base_url", GEMINI_API_BASE)
        self.model = gemini_config.get("model", "gemini-1.5-flash")
        self.timeout = gemini_config.get("timeout_seconds", 60)

    def _build_body(self, prompt: str, image: Optional[bytes], mime_type: Optional[str]) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = [{"text": prompt}]
        if image is not None:
            parts.append({
                "inline_data": {
                    "mime_type": mime_type or "image/jpeg",
                    "data": base64.b64encode(image).decode(),
                }
            })
        return {"contents": [{"parts": parts}]}

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            raise GeminiAPIError("Gemini returned no candidates")
        parts = candidates[0].get("content", {}).get("parts", [])
        return "".join(part.get("text", "") for part in parts)

    async def generate(self, prompt: str, image: Optional[bytes] = None, mime_type: Optional[str] = None) -> str:
        """Send a prompt (and optionally an image) and return the reply text."""
        if not self.api_key:
            raise GeminiAPIError("Gemini API key is not configured")

        url = f"{self.base_url}/models/{self.model}:generateContent"
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, params={"key": self.api_key},
                                    json=self._build_body(prompt, image, mime_type)) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise GeminiAPIError(f"Gemini API error: {response.status} - {error_text}", response.status)
                data = await response.json()

        return self._extract_text(data)
