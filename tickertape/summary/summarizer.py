"""Article summarization through an OpenAI-compatible chat-completions endpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import openai
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from tickertape.errors import PersistenceWriteError, SummaryError
from tickertape.storage.base import ArticleStore

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """You summarize Japanese listed-company news (earnings, revisions, disclosures).
Read the article body below and summarize it in 2-3 sentences (at most 200 Japanese characters).
- Always include the figures and the change: sales, ordinary profit, dividend increase/cut, record profit, swing to loss.
- For a revision, state the difference between the previous and revised figures.

[Article body]
{body}"""

_TRANSIENT = (openai.APIConnectionError, openai.APITimeoutError, openai.RateLimitError, openai.InternalServerError)


def _base_url(endpoint: str) -> Optional[str]:
    url = (endpoint or "").strip().rstrip("/")
    if url.endswith("/chat/completions"):
        url = url[: -len("/chat/completions")]
    return url or None


class Summarizer:
    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        endpoint: str = "",
        timeout_ms: int = 30000,
        temperature: float = 0.7,
        max_tokens: int = 500,
        client: Optional[openai.OpenAI] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = client or openai.OpenAI(
            api_key=api_key,
            base_url=_base_url(endpoint),
            timeout=timeout_ms / 1000.0,
            max_retries=0,
        )

    @retry(
        retry=retry_if_exception_type(_TRANSIENT),
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=8),
        reraise=True,
    )
    def _complete(self, prompt: str):
        return self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

    def summarize(self, body: str) -> str:
        try:
            response = self._complete(PROMPT_TEMPLATE.format(body=body))
        except openai.OpenAIError as e:
            raise SummaryError(f"summary request failed: {e}") from e
        choices = getattr(response, "choices", None) or []
        if not choices:
            raise SummaryError("summary response contained no choices")
        content = (choices[0].message.content or "").strip()
        if not content:
            raise SummaryError("summary response was empty")
        return content


@dataclass
class SummaryJob:
    store: ArticleStore
    summarizer: Summarizer
    batch_size: int = 20

    def run_once(self) -> int:
        written = 0
        for article in self.store.articles_missing_summary(self.batch_size):
            try:
                summary = self.summarizer.summarize(article.body)
            except SummaryError as e:
                logger.error(f"Summary failed for article {article.id}: {e}")
                continue
            try:
                if self.store.set_summary(article.id, summary):
                    written += 1
                else:
                    logger.debug(f"article {article.id} already had a summary")
            except PersistenceWriteError as e:
                logger.error(f"Could not store summary for article {article.id}: {e}")
        logger.info(f"Summaries written: {written}")
        return written
