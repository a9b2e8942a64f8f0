"""Model capability tables: tool-calling support and context window sizes.

Also centralizes the message used when an Ollama model is not installed
locally, so every caller reports it the same way.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Tuple

from .constants import DEFAULT_CONTEXT_LIMIT

# Models with native tool calling (ollama.com/search?c=tools)
TOOL_SUPPORTED_MODELS: Tuple[str, ...] = (
    # Llama family
    "llama3.1",
    "llama3.2",
    "llama3.3",
    "llama4",
    "llama3-groq-tool-use",
    # Qwen family
    "qwen2",
    "qwen2.5",
    "qwen2.5-coder",
    "qwen3",
    "qwen3-coder",
    "qwen3-vl",
    "qwq",
    # Mistral family
    "mistral",
    "mistral-nemo",
    "mistral-small",
    "mistral-small3.1",
    "mistral-small3.2",
    "mistral-large",
    # DeepSeek
    "deepseek-r1",
    "deepseek-v3",
    "deepseek-v3.1",
    # Command family
    "command-r",
    "command-r-plus",
    "command-r7b",
    "command-r7b-arabic",
    "command-a",
    # Granite family
    "granite3-dense",
    "granite3.1-dense",
    "granite3.1-moe",
    "granite3-moe",
    "granite3.2",
    "granite3.2-vision",
    "granite3.3",
    "granite4",
    # Others
    "mixtral",
    "hermes3",
    "nemotron",
    "nemotron-mini",
    "firefunction-v2",
    "gpt-oss",
    "gpt-oss-safeguard",
    "cogito",
    "magistral",
    "phi4-mini",
    "smollm2",
    "devstral",
    "athene-v2",
    "aya-expanse",
)

RECOMMENDED_TOOL_MODELS: Tuple[Tuple[str, str], ...] = (
    ("llama3.2:3b", "Lightweight, fast, excellent tool support"),
    ("qwen3:4b", "Best balance of speed and quality"),
    ("mistral-nemo:12b", "Larger context, better reasoning"),
    ("deepseek-r1:7b", "Strong reasoning capabilities"),
)

# Context window sizes in tokens, keyed by base model name (insertion order matters for prefix lookup)
MODEL_CONTEXT_LIMITS: Dict[str, int] = {
    "llama3.2": 128000,
    "llama3.1": 128000,
    "llama3.3": 128000,
    "llama4": 128000,
    "qwen2": 32768,
    "qwen2.5": 32768,
    "qwen3": 32768,
    "qwq": 32768,
    "mistral": 128000,
    "mistral-nemo": 128000,
    "ministral": 128000,
    "deepseek-r1": 65536,
    "deepseek-v3": 65536,
    "phi3": 4096,
    "phi4": 16384,
    "gemma": 8192,
    "gemma2": 8192,
}


def base_model_name(model_name: str) -> str:
    """Lower-cased name without the `:tag` suffix."""
    return (model_name or "").strip().lower().split(":")[0]


def supports_tools(model_name: str) -> bool:
    """Whether `model_name` (e.g. 'llama3.2:latest') supports native tool calling.

    The family is the base name up to the first '-', and a family matches when
    either side is a prefix of the other, so 'qwen3' covers 'qwen3-coder' and
    'llama3' covers 'llama3.2'.
    """
    family = base_model_name(model_name).split("-")[0]
    if not family:
        return False
    for supported in TOOL_SUPPORTED_MODELS:
        supported_family = supported.split("-")[0]
        if family.startswith(supported_family) or supported_family.startswith(family):
            return True
    return False


def recommended_models() -> List[str]:
    return [name for name, _ in RECOMMENDED_TOOL_MODELS]


def tool_support_message(model_name: str) -> str:
    if supports_tools(model_name):
        return f'"{model_name}" supports tool calling'
    return f"\"{model_name}\" doesn't support tool calling. Try: {', '.join(recommended_models())}"


def get_context_limit(model_name: str) -> int:
    """Context window for `model_name`: exact base-name match, then prefix match, else the default."""
    base = base_model_name(model_name)
    if not base:
        return DEFAULT_CONTEXT_LIMIT
    if base in MODEL_CONTEXT_LIMITS:
        return MODEL_CONTEXT_LIMITS[base]
    for key, limit in MODEL_CONTEXT_LIMITS.items():
        if base.startswith(key) or key.startswith(base):
            return limit
    return DEFAULT_CONTEXT_LIMIT


def handle_missing_model(mark_error: Callable[[str], object] | None, model_name: str) -> str:
    """Log and optionally mark a missing model message.

    mark_error: a callable (like ConversationEngine._set_error) that accepts a string; may be None.
    model_name: the Ollama model name to suggest pulling.
    """
    msg = f"Model '{model_name}' not found. Run 'ollama pull {model_name}' and retry."
    logging.error(msg)
    if mark_error:
        try:
            mark_error(msg)
        except Exception:
            logging.debug("mark_error failed for missing model message", exc_info=True)
    return msg


__all__ = [
    "MODEL_CONTEXT_LIMITS",
    "RECOMMENDED_TOOL_MODELS",
    "TOOL_SUPPORTED_MODELS",
    "base_model_name",
    "get_context_limit",
    "handle_missing_model",
    "recommended_models",
    "supports_tools",
    "tool_support_message",
]
