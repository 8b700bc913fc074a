"""Sentiment, summary and translation helpers for ingested news.

Hosted models (OpenAI sentiment, Anthropic summaries, Google translation) are
used when their API keys are configured, with the local keyword classifier and
truncating summarizer as fallback. The refresh pipeline only depends on the
protocols below.
"""
import json
import logging
from typing import Optional, Protocol

import requests

from nashra.schemas.market import SentimentResult, Summary

logger = logging.getLogger(__name__)

POSITIVE_WORDS = ("growth", "profit", "success", "gain", "increase", "strong", "up")
NEGATIVE_WORDS = ("loss", "decline", "fall", "weak", "down", "crisis")

POSITIVE_THRESHOLD = 0.2
NEGATIVE_THRESHOLD = -0.2
SENTIMENTS = ("positive", "neutral", "negative")

# Responses that cannot be turned into a result; callers fall back to the local helpers
PROVIDER_ERRORS = (requests.RequestException, ValueError, KeyError, IndexError, TypeError)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def label_for_score(score: float) -> str:
    if score > POSITIVE_THRESHOLD:
        return "positive"
    if score < NEGATIVE_THRESHOLD:
        return "negative"
    return "neutral"


class SentimentClassifier(Protocol):
    def classify(self, text: str) -> SentimentResult: ...


class Summarizer(Protocol):
    def summarize(self, text: str) -> Summary: ...


class Translator(Protocol):
    def translate_to_arabic(self, text: str) -> str: ...


class KeywordSentimentClassifier:
    """Each lexicon word present (substring match) moves the score by ``weight``."""

    def __init__(self, positive=POSITIVE_WORDS, negative=NEGATIVE_WORDS,
                 weight: float = 0.1, confidence: float = 0.75):
        self.positive = tuple(positive)
        self.negative = tuple(negative)
        self.weight = weight
        self.confidence = confidence

    def classify(self, text: str) -> SentimentResult:
        lowered = (text or "").lower()
        score = 0.0
        for word in self.positive:
            if word in lowered:
                score += self.weight
        for word in self.negative:
            if word in lowered:
                score -= self.weight
        # float accumulation: 3 * 0.1 must clear the 0.2 threshold
        score = round(_clamp(score, -1.0, 1.0), 6)
        return SentimentResult(sentiment=label_for_score(score), score=score, confidence=self.confidence)


class TruncatingSummarizer:
    model_name = "truncate-50"

    def __init__(self, max_words: int = 50, confidence: float = 0.85):
        self.max_words = max_words
        self.confidence = confidence

    def summarize(self, text: str) -> Summary:
        words = (text or "").split()
        body = " ".join(words[:self.max_words])
        if len(words) > self.max_words:
            body += "..."
        return Summary(text=body, confidence=self.confidence, model_name=self.model_name)


class PrefixTranslator:
    def translate_to_arabic(self, text: str) -> str:
        return f"[AR] {text}"


class GoogleTranslator:
    URL = "https://translation.googleapis.com/language/translate/v2"

    def __init__(self, api_key: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def translate_to_arabic(self, text: str) -> str:
        resp = self.session.post(
            self.URL,
            params={"key": self.api_key},
            json={"q": text, "target": "ar", "source": "en", "format": "text"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()["data"]["translations"][0]["translatedText"]


class OpenAISentimentClassifier:
    """Chat-completions sentiment with the keyword classifier as fallback."""

    URL = "https://api.openai.com/v1/chat/completions"
    PROMPT = (
        "Analyze the sentiment of financial news. Respond with JSON: "
        '{"sentiment": "positive|neutral|negative", "score": -1 to 1, "confidence": 0 to 1}'
    )

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", timeout: float = 15.0,
                 session: Optional[requests.Session] = None,
                 fallback: Optional[SentimentClassifier] = None):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()
        self.fallback = fallback or KeywordSentimentClassifier()

    def classify(self, text: str) -> SentimentResult:
        try:
            return self._classify(text)
        except PROVIDER_ERRORS as e:
            logger.warning("OpenAI sentiment failed, using keyword classifier: %s", e)
            return self.fallback.classify(text)

    def _classify(self, text: str) -> SentimentResult:
        resp = self.session.post(
            self.URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": self.PROMPT},
                    {"role": "user", "content": text},
                ],
                "response_format": {"type": "json_object"},
            },
            timeout=self.timeout,
        )
        resp.raise_for_status()
        payload = json.loads(resp.json()["choices"][0]["message"]["content"])
        score = round(_clamp(float(payload["score"]), -1.0, 1.0), 6)
        confidence = _clamp(float(payload.get("confidence", 0.0)), 0.0, 1.0)
        sentiment = str(payload.get("sentiment", "")).lower()
        if sentiment not in SENTIMENTS:
            sentiment = label_for_score(score)
        return SentimentResult(sentiment=sentiment, score=score, confidence=confidence)


class AnthropicSummarizer:
    URL = "https://api.anthropic.com/v1/messages"
    API_VERSION = "2023-06-01"

    def __init__(self, api_key: str, model: str = "claude-3-5-haiku-latest", max_tokens: int = 200,
                 confidence: float = 0.9, timeout: float = 20.0,
                 session: Optional[requests.Session] = None,
                 fallback: Optional[Summarizer] = None):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.confidence = confidence
        self.timeout = timeout
        self.session = session or requests.Session()
        self.fallback = fallback or TruncatingSummarizer()

    def summarize(self, text: str) -> Summary:
        try:
            resp = self.session.post(
                self.URL,
                headers={"x-api-key": self.api_key, "anthropic-version": self.API_VERSION},
                json={
                    "model": self.model,
                    "max_tokens": self.max_tokens,
                    "messages": [{
                        "role": "user",
                        "content": f"Summarize this financial news in 2-3 sentences:\n\n{text}",
                    }],
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
            body = resp.json()["content"][0]["text"].strip()
        except PROVIDER_ERRORS as e:
            logger.warning("Anthropic summary failed, truncating instead: %s", e)
            return self.fallback.summarize(text)
        if not body:
            return self.fallback.summarize(text)
        return Summary(text=body, confidence=self.confidence, model_name=self.model)


def build_classifier(api_key: Optional[str], model: str = "gpt-4o-mini") -> SentimentClassifier:
    if api_key:
        return OpenAISentimentClassifier(api_key, model=model)
    return KeywordSentimentClassifier()


def build_summarizer(api_key: Optional[str], model: str = "claude-3-5-haiku-latest") -> Summarizer:
    if api_key:
        return AnthropicSummarizer(api_key, model=model)
    return TruncatingSummarizer()


def build_translator(api_key: Optional[str]) -> Translator:
    if api_key:
        return GoogleTranslator(api_key)
    return PrefixTranslator()
