"""
Gemini API Client

Wrapper for Google Gemini through LangChain with prompt caching and error
handling. Generates explanatory text ONLY - risk scores come from the
prediction services and are never produced here.
"""
from dataclasses import dataclass, field
from typing import Dict, Any, Optional
from datetime import datetime
import hashlib
import re

from langchain_google_genai import ChatGoogleGenerativeAI

from caresight.config import settings
from caresight.utils import get_logger, RecommendationError

logger = get_logger(__name__)


@dataclass
class GeminiConfig:
    """Configuration for Gemini client."""
    api_key: Optional[str] = field(default_factory=lambda: settings.gemini_api_key)
    model: str = field(default_factory=lambda: settings.gemini_model)
    temperature: float = field(default_factory=lambda: settings.gemini_temperature)

    max_output_tokens: int = 2048
    top_p: float = 0.8
    top_k: int = 40

    request_timeout_seconds: int = 60

    # Prompt cache
    cache_ttl_seconds: int = 900
    cache_max_entries: int = 500


@dataclass
class GeminiResponse:
    """Structured response from Gemini."""
    text: str
    model: str
    finish_reason: str = "STOP"
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "model": self.model,
            "finish_reason": self.finish_reason,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "latency_ms": round(self.latency_ms, 2),
        }


class GeminiClient:
    """
    Client for Google Gemini.

    Used for explaining prediction results - NOT for diagnosis.
    """

    def __init__(self, config: Optional[GeminiConfig] = None, llm: Optional[Any] = None):
        """
        Initialize Gemini client.

        Args:
            config: Optional configuration, uses settings if not provided
            llm: Optional pre-built LangChain chat model (anything with ``ainvoke``)
        """
        self.config = config or GeminiConfig()
        self._llm = llm
        self._request_count = 0
        self._last_request_time: Optional[datetime] = None
        self._cache: Dict[str, tuple] = {}  # {cache_key: (timestamp, text)}

        if self._llm is None:
            self._initialize()

    def _initialize(self):
        """Build the LangChain model when an API key is configured."""
        if not self.config.api_key:
            logger.warning("No Gemini API key configured - recommendations disabled")
            return

        self._llm = ChatGoogleGenerativeAI(
            model=self.config.model,
            temperature=self.config.temperature,
            max_output_tokens=self.config.max_output_tokens,
            top_p=self.config.top_p,
            top_k=self.config.top_k,
            timeout=self.config.request_timeout_seconds,
            max_retries=1,  # single attempt
            google_api_key=self.config.api_key,
        )
        logger.info(f"LangChain Gemini client initialized with model: {self.config.model}")

    @property
    def is_available(self) -> bool:
        return self._llm is not None

    async def generate_async(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        use_cache: bool = True
    ) -> GeminiResponse:
        """
        Generate text with LangChain's ``ainvoke``.

        Raises:
            RecommendationError: Gemini unavailable, failed, or returned nothing
        """
        if not self.is_available:
            raise RecommendationError("Gemini is not configured (missing API key)")

        cache_key = None
        if use_cache:
            cache_key = self._get_cache_key(prompt, system_instruction)
            cached = self._get_from_cache(cache_key)
            if cached:
                logger.info(f"Gemini cache hit for prompt {cache_key[:8]}")
                return GeminiResponse(
                    text=cached,
                    model=f"{self.config.model} (cached)",
                    finish_reason="CACHED",
                )

        start_time = datetime.now()
        full_prompt = f"{system_instruction}\n\n{prompt}" if system_instruction else prompt

        try:
            response = await self._llm.ainvoke(full_prompt)
        except Exception as e:
            logger.error(f"Gemini generation failed: {e}")
            raise RecommendationError(f"Gemini generation failed: {e}") from e

        latency = (datetime.now() - start_time).total_seconds() * 1000
        text = self._extract_text(response).strip()
        if not text:
            raise RecommendationError("Gemini returned an empty response")

        prompt_tokens = 0
        completion_tokens = 0
        usage = getattr(response, "usage_metadata", None)
        if isinstance(usage, dict):
            prompt_tokens = usage.get("input_tokens", 0)
            completion_tokens = usage.get("output_tokens", 0)

        self._request_count += 1
        self._last_request_time = datetime.now()

        if cache_key:
            self._add_to_cache(cache_key, text)

        return GeminiResponse(
            text=text,
            model=self.config.model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            latency_ms=latency,
        )

    @staticmethod
    def _extract_text(response: Any) -> str:
        content = getattr(response, "content", response)
        # Newer Gemini models may return a list of content parts
        if isinstance(content, list):
            parts = []
            for part in content:
                if isinstance(part, dict):
                    parts.append(str(part.get("text", "")))
                else:
                    parts.append(str(part))
            return "".join(parts)
        return str(content)

    def _get_cache_key(self, prompt: str, system_instruction: Optional[str]) -> str:
        """Hash of the whitespace-collapsed prompt; floats rounded to 1 decimal."""
        def _round_float(m: re.Match) -> str:
            return f"{round(float(m.group()), 1)}"

        normalized = re.sub(r"\d+\.\d+", _round_float, prompt)
        normalized = " ".join(normalized.split())
        content = f"{self.config.model}|||{system_instruction or ''}|||{normalized}"
        return hashlib.md5(content.encode()).hexdigest()

    def _get_from_cache(self, cache_key: str) -> Optional[str]:
        if cache_key in self._cache:
            cached_time, cached_text = self._cache[cache_key]
            age = (datetime.now() - cached_time).total_seconds()
            if age < self.config.cache_ttl_seconds:
                return cached_text
            del self._cache[cache_key]
        return None

    def _add_to_cache(self, cache_key: str, text: str):
        self._cache[cache_key] = (datetime.now(), text)
        if len(self._cache) > self.config.cache_max_entries:
            oldest_key = min(self._cache.keys(), key=lambda k: self._cache[k][0])
            del self._cache[oldest_key]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "is_available": self.is_available,
            "model": self.config.model,
            "request_count": self._request_count,
            "cached_prompts": len(self._cache),
            "last_request": self._last_request_time.isoformat() if self._last_request_time else None,
        }
