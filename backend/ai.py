import logging
import os
from typing import Optional

import httpx
from dotenv import load_dotenv

from config import CONFIG

# Load environment variables from .env
load_dotenv()

logger = logging.getLogger(__name__)

OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
MODEL = os.getenv("OPENROUTER_MODEL", CONFIG.provider.model)
BASE_URL = os.getenv("OPENROUTER_BASE_URL", CONFIG.provider.base_url)
APP_TITLE = "MemeEcon Settlement"


def build_headers() -> dict:
    # Checked per call, not at import
    if not OPENROUTER_API_KEY:
        raise ValueError("OPENROUTER_API_KEY not found in .env file")
    return {
        "Authorization": f"Bearer {OPENROUTER_API_KEY}",
        "Content-Type": "application/json",
        "X-Title": APP_TITLE,
    }

def build_payload(system_prompt: str, user_prompt: str, temperature: float = 0.2,
                  model: Optional[str] = None) -> dict:
    """Chat completion body asking for a single JSON object back."""
    return {
        "model": model or MODEL,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "temperature": temperature,
        "response_format": {"type": "json_object"},
    }

async def send_request(payload: dict, timeout: Optional[float] = None) -> dict:
    async with httpx.AsyncClient(timeout=timeout or CONFIG.provider.request_timeout_seconds) as client:
        r = await client.post(BASE_URL, headers=build_headers(), json=payload)
        r.raise_for_status()
        return r.json()

def extract_text(response_json: dict) -> str:
    """
    Assistant text of the first choice.

    OpenRouter sometimes answers 200 with an {"error": ...} body instead of
    choices; that is raised as ValueError like any other unusable reply.
    """
    if "error" in response_json:
        error = response_json["error"]
        message = error.get("message", error) if isinstance(error, dict) else error
        raise ValueError(f"OpenRouter error: {message}")
    content = response_json["choices"][0]["message"]["content"]
    if not content:
        raise ValueError("OpenRouter returned an empty message")
    return content

async def call_llm(system_prompt: str, user_prompt: str, temperature: float = 0.2) -> str:
    payload = build_payload(system_prompt, user_prompt, temperature)
    logger.debug("Calling %s (%d prompt chars)", payload["model"], len(user_prompt))
    response_json = await send_request(payload)
    return extract_text(response_json)
