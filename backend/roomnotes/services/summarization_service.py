from __future__ import annotations

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional
import logging
import os
import re
import threading

import requests

from roomnotes.config import Settings
from roomnotes.errors import UpstreamError
from roomnotes.models.room import Annotation

try:
    from llama_cpp import Llama  # type: ignore
except Exception:  # pragma: no cover
    Llama = None  # type: ignore

logger = logging.getLogger("roomnotes.summarization")


SUMMARY_SYSTEM_PROMPT = (
    "You are a helpful assistant. Your task is to understand the input provided by the user "
    "and create a detailed summary of the content. Please provide a summary of the following text: \n\n"
)

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.IGNORECASE | re.DOTALL)
_THINK_CLOSE = re.compile(r"</think>", re.IGNORECASE)
_THINK_OPEN = re.compile(r"<think>", re.IGNORECASE)


def strip_reasoning(text: str) -> str:
    """Remove ``<think>...</think>`` reasoning from model output.

    Paired blocks are dropped wherever they occur. A close tag left without its
    opener means the output started mid-reasoning, so everything up to it goes;
    an opener left without a close tag means the reasoning was cut off, so
    everything after it goes. The result is trimmed, and contains no tags, so
    applying the function again is a no-op.
    """
    cleaned = _THINK_BLOCK.sub("", text or "")
    closes = list(_THINK_CLOSE.finditer(cleaned))
    if closes:
        cleaned = cleaned[closes[-1].end():]
    opener = _THINK_OPEN.search(cleaned)
    if opener:
        cleaned = cleaned[: opener.start()]
    return cleaned.strip()


def build_summary_input(annotations: Iterable[Annotation]) -> str:
    return " ".join(a.selection for a in annotations)


@dataclass
class LlmConfig:
    model: Optional[str] = None
    model_path: Optional[str] = None
    temperature: float = 0.0
    max_tokens: int = 0


class SummarizerError(RuntimeError):
    pass


class Summarizer(ABC):
    """A chat-style text model that answers one system+user exchange."""

    @abstractmethod
    def complete(self, system: str, user: str) -> str:
        raise NotImplementedError

    def close(self) -> None:
        pass


class OpenAICompatibleSummarizer(Summarizer):
    """Any ``/v1/chat/completions`` endpoint (Groq, OpenAI, vLLM, Ollama...)."""

    def __init__(
        self,
        api_key: Optional[str],
        cfg: LlmConfig,
        base_url: str = "https://api.groq.com/openai",
        timeout: float = 120.0,
        http: Optional[requests.Session] = None,
    ) -> None:
        self._api_key = api_key
        self._cfg = cfg
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._http = http or requests.Session()

    def complete(self, system: str, user: str) -> str:
        body: Dict[str, Any] = {
            "model": self._cfg.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": self._cfg.temperature,
        }
        if self._cfg.max_tokens > 0:
            body["max_tokens"] = self._cfg.max_tokens
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            response = self._http.post(
                f"{self._base_url}/v1/chat/completions",
                headers=headers,
                json=body,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise SummarizerError(f"Failed to reach summarization endpoint: {exc}") from exc

        if response.status_code != 200:
            raise SummarizerError(f"Summarization endpoint error: {response.status_code} {response.text[:200]}")

        choices = response.json().get("choices", [])
        if not choices:
            raise SummarizerError("Summarization response missing choices")
        # content may be null
        return (choices[0].get("message") or {}).get("content") or ""

    def close(self) -> None:
        self._http.close()


class LlamaCppSummarizer(Summarizer):
    """Local GGUF model through llama-cpp-python, loaded on first use."""

    def __init__(self, cfg: LlmConfig, n_ctx: int = 32768) -> None:
        self._cfg = cfg
        self._n_ctx = n_ctx
        self._llm: Optional["Llama"] = None
        # llama.cpp contexts are not safe to share between threads
        self._lock = threading.Lock()

    def _load(self) -> "Llama":
        if Llama is None:
            raise SummarizerError(
                "llama-cpp-python is not available. Install it to enable local summarization."
            )
        if not self._cfg.model_path:
            raise SummarizerError("No local LLM model configured. Set RN_LLM_MODEL_PATH to a GGUF file.")
        path = Path(os.path.expandvars(self._cfg.model_path)).expanduser()
        if not path.exists():
            raise SummarizerError(f"LLM model file not found: {path}")
        return Llama(model_path=str(path), n_ctx=self._n_ctx, verbose=False)

    def complete(self, system: str, user: str) -> str:
        with self._lock:
            if self._llm is None:
                self._llm = self._load()
            kwargs: Dict[str, Any] = {
                "messages": [
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                "temperature": self._cfg.temperature,
            }
            if self._cfg.max_tokens > 0:
                kwargs["max_tokens"] = self._cfg.max_tokens
            try:
                resp = self._llm.create_chat_completion(**kwargs)
            except Exception as exc:
                raise SummarizerError(f"Local model failed: {exc}") from exc
        choices = resp.get("choices") or [{}]
        return (choices[0].get("message") or {}).get("content") or ""


class SummarizationService:
    """Runs one summarization with an upper time bound and cleans the output."""

    def __init__(self, summarizer: Summarizer, timeout: float = 120.0, max_workers: int = 4) -> None:
        self.summarizer = summarizer
        self.timeout = timeout
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="summarizer")

    def summarize(self, text: str) -> str:
        started = threading.Event()

        def _run() -> str:
            started.set()
            return self.summarizer.complete(SUMMARY_SYSTEM_PROMPT, text)

        future = self._pool.submit(_run)
        # The bound applies to the call itself, not to time queued behind other rooms.
        if not started.wait(self.timeout):
            future.cancel()
            logger.warning("No summarizer worker free after %.1fs", self.timeout)
            raise UpstreamError("Error generating summary", error="summarizer busy; no worker became free in time")
        try:
            raw = future.result(timeout=self.timeout)
        except FuturesTimeout:
            logger.warning("Summarization timed out after %.1fs", self.timeout)
            raise UpstreamError("Error generating summary", error=f"summarization timed out after {self.timeout}s")
        except Exception as exc:
            logger.warning("Summarization failed: %s", exc)
            raise UpstreamError("Error generating summary", error=str(exc)) from exc

        cleaned = strip_reasoning(raw)
        if not cleaned:
            raise UpstreamError("Error generating summary", error="summarizer returned an empty summary")
        return cleaned

    def close(self) -> None:
        self._pool.shutdown(wait=False)
        self.summarizer.close()


def build_summarizer(settings: Settings) -> Summarizer:
    cfg = LlmConfig(
        model=settings.llm_model,
        model_path=settings.llm_model_path,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
    )
    if settings.llm_backend == "llama_cpp":
        return LlamaCppSummarizer(cfg)
    return OpenAICompatibleSummarizer(
        api_key=settings.llm_api_key,
        cfg=cfg,
        base_url=settings.llm_base_url,
        # Under the service bound so a stalled request frees its worker
        timeout=settings.llm_timeout_seconds * 0.9,
    )
