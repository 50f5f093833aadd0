"""
Sentiment Scorer - maps standup text to a score in [-1, 1]

Features:
- Hosted language-model scorer over HTTP (OpenAI-compatible chat completions)
- Retry with backoff and a circuit breaker around the HTTP call
- Neutral scorer used when no API key is configured
- Never raises: any failure scores 0.0
"""
import logging
import math
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

import requests
from requests.exceptions import RequestException, Timeout, ConnectionError as RequestsConnectionError

from pulse.core.config import get_settings
from pulse.core.exceptions import SentimentServiceException
from pulse.core.resilience import retry_with_backoff, CircuitBreakerError

logger = logging.getLogger(__name__)

SENTIMENT_RETRY_EXCEPTIONS = (
    RequestException,
    Timeout,
    RequestsConnectionError,
)

SENTIMENT_PROMPT = """Analyze the sentiment and emotional state of this standup update. Consider:
- Stress indicators (urgent, blocked, struggling, overwhelmed)
- Positive indicators (completed, accomplished, productive, excited)
- Burnout signals (tired, exhausted, too many tasks)
- Engagement level (detailed updates vs minimal effort)

Text: "{text}"

Rate sentiment from -1 (very negative/burned out) to 1 (very positive/engaged).
Respond with ONLY a number between -1 and 1."""


class SentimentScorer(ABC):
    """Black-box sentiment function. Implementations must never raise from score()."""

    #: False when scores carry no signal (the sentiment detector is skipped)
    available: bool = True

    @abstractmethod
    def score(self, text: Optional[str]) -> float:
        """Return a score in [-1, 1]; 0.0 for empty text or on failure."""

    def score_many(self, texts: Sequence[str], max_workers: int = 4) -> List[float]:
        """Score several texts in parallel, preserving input order."""
        if not texts:
            return []
        if max_workers <= 1 or len(texts) == 1:
            return [self.score(t) for t in texts]
        with ThreadPoolExecutor(max_workers=min(max_workers, len(texts)),
                                thread_name_prefix="sentiment_") as pool:
            return list(pool.map(self.score, texts))


class NeutralSentimentScorer(SentimentScorer):
    """Used when the sentiment service is not configured."""

    available = False

    def score(self, text: Optional[str]) -> float:
        return 0.0


@retry_with_backoff(
    max_attempts=3,
    min_wait=0.5,
    max_wait=4,
    exceptions=SENTIMENT_RETRY_EXCEPTIONS,
    circuit_breaker_name="sentiment",
)
def _post_completion(url: str, headers: dict, payload: dict, timeout: float) -> dict:
    response = requests.post(url, json=payload, headers=headers, timeout=timeout)
    response.raise_for_status()
    return response.json()


def parse_score(content: Optional[str]) -> float:
    """Parse the model reply into a clamped score."""
    try:
        value = float((content or "").strip())
    except ValueError:
        raise SentimentServiceException(detail=f"Non-numeric sentiment reply: {content!r}")
    if not math.isfinite(value):
        raise SentimentServiceException(detail=f"Non-finite sentiment reply: {content!r}")
    return max(-1.0, min(1.0, value))


class LLMSentimentScorer(SentimentScorer):
    """Scores text with a hosted chat-completions model."""

    def __init__(self, api_key: str, api_url: str, model: str, timeout_seconds: float = 30.0):
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.timeout_seconds = timeout_seconds

    def _request_score(self, text: str) -> float:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": SENTIMENT_PROMPT.format(text=text)}],
            "temperature": 0.3,
            "max_tokens": 10,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        data = _post_completion(self.api_url, headers, payload, self.timeout_seconds)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise SentimentServiceException(detail="Malformed sentiment response")
        return parse_score(content)

    def score(self, text: Optional[str]) -> float:
        if not text or not text.strip():
            return 0.0
        try:
            return self._request_score(text)
        except CircuitBreakerError:
            logger.warning("Sentiment circuit open, scoring as neutral")
            return 0.0
        except Exception as e:
            logger.warning(f"Sentiment scoring failed, scoring as neutral: {e}")
            return 0.0


_sentiment_scorer: Optional[SentimentScorer] = None


def get_sentiment_scorer() -> SentimentScorer:
    """Get or create the process-wide scorer based on settings."""
    global _sentiment_scorer
    if _sentiment_scorer is None:
        settings = get_settings()
        if settings.sentiment_configured:
            _sentiment_scorer = LLMSentimentScorer(
                api_key=settings.sentiment_api_key,
                api_url=settings.sentiment_api_url,
                model=settings.sentiment_model,
                timeout_seconds=settings.sentiment_timeout_seconds,
            )
            logger.info(f"Sentiment scoring enabled (model: {settings.sentiment_model})")
        else:
            _sentiment_scorer = NeutralSentimentScorer()
            logger.warning("Sentiment API key not configured - all sentiment scores are neutral")
    return _sentiment_scorer
