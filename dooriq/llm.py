"""
vLLM client for homeowner replies.

Talks to an OpenAI-compatible /chat/completions endpoint.

- Circuit Breaker: open/closed/half-open
- LLMStats: success_rate, avg_response_time
- Retry: exponential backoff, bounded by an overall time budget
- Fallback: graceful degradation on failure

Start a vLLM server:
    vllm serve Qwen/Qwen3-4B-AWQ --port 8000 --quantization awq
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from dooriq.errors import UpstreamError
from dooriq.logger import logger
from dooriq.settings import settings


@dataclass
class CircuitBreakerState:
    failures: int = 0
    last_failure_time: float = 0.0
    is_open: bool = False
    open_until: float = 0.0


@dataclass
class LLMStats:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    fallback_used: int = 0
    total_retries: int = 0
    circuit_breaker_trips: int = 0
    total_response_time_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 100.0
        return (self.successful_requests / self.total_requests) * 100

    @property
    def average_response_time_ms(self) -> float:
        if self.successful_requests == 0:
            return 0.0
        return self.total_response_time_ms / self.successful_requests


class VLLMClient:
    """
    vLLM client used by the reply generator.

    Requirements:
        - vLLM (or any OpenAI-compatible server) reachable at base_url
    """

    MAX_RETRIES: int = 2
    INITIAL_DELAY: float = 0.5
    MAX_DELAY: float = 4.0
    BACKOFF_MULTIPLIER: float = 2.0

    CIRCUIT_BREAKER_THRESHOLD: int = 5
    CIRCUIT_BREAKER_TIMEOUT: int = 60

    def __init__(
        self,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        enable_circuit_breaker: bool = True,
        enable_retry: bool = True,
        fallback_reply: Optional[str] = None,
    ):
        """
        Args:
            model: Model name (settings.llm.model by default)
            base_url: API URL (settings.llm.base_url by default)
            timeout: Overall time budget for one generate() call, seconds
            enable_circuit_breaker: Enable the circuit breaker
            enable_retry: Retry with exponential backoff
            fallback_reply: Text returned when generation fails
        """
        self.model = model or settings.llm.model
        self.base_url = base_url or settings.llm.base_url
        self.timeout = timeout or settings.llm.timeout
        self.temperature = settings.llm.temperature
        self.max_tokens = settings.llm.max_tokens
        self.fallback_reply = fallback_reply or settings.simulation.fallback_reply

        self._enable_circuit_breaker = enable_circuit_breaker
        self._enable_retry = enable_retry

        self._circuit_breaker = CircuitBreakerState()
        self._stats = LLMStats()

    def reset(self) -> None:
        self._stats = LLMStats()

    def reset_circuit_breaker(self) -> None:
        self._circuit_breaker = CircuitBreakerState()
        logger.info("Circuit breaker reset")

    @property
    def stats(self) -> LLMStats:
        return self._stats

    @property
    def is_circuit_open(self) -> bool:
        return self._is_circuit_open()

    # =========================================================================
    # GENERATION
    # =========================================================================

    def generate(
        self,
        messages: List[Dict[str, str]],
        state: Optional[str] = None,
        allow_fallback: bool = True,
    ) -> str:
        """
        Chat completion with resilience.

        The whole call, retries included, stays within self.timeout seconds.

        Args:
            messages: OpenAI-style chat messages
            state: Conversation state (for logs)
            allow_fallback: Return the fallback reply instead of raising

        Returns:
            Model reply or fallback

        Raises:
            UpstreamError: All attempts failed and allow_fallback is False
        """
        self._stats.total_requests += 1
        start_time = time.time()
        deadline = start_time + self.timeout

        if self._enable_circuit_breaker and self._is_circuit_open():
            logger.warning("Circuit breaker open, using fallback", state=state)
            return self._fail("circuit_open", state, allow_fallback)

        last_error: Optional[Exception] = None
        delay = self.INITIAL_DELAY
        max_attempts = self.MAX_RETRIES + 1 if self._enable_retry else 1

        for attempt in range(max_attempts):
            remaining = deadline - time.time()
            if remaining <= 0:
                break
            try:
                response_text = self._call_llm(messages, timeout=remaining)

                elapsed_ms = (time.time() - start_time) * 1000
                self._stats.successful_requests += 1
                self._stats.total_response_time_ms += elapsed_ms
                self._reset_failures()

                logger.metric("reply_latency_ms", round(elapsed_ms, 1), state=state, attempt=attempt + 1)
                return response_text

            except requests.exceptions.Timeout as e:
                last_error = e
                logger.warning(f"vLLM timeout (attempt {attempt + 1}/{max_attempts})", state=state)
            except requests.exceptions.ConnectionError as e:
                last_error = e
                logger.warning(f"vLLM connection error (attempt {attempt + 1}/{max_attempts})", state=state)
            except requests.exceptions.RequestException as e:
                last_error = e
                logger.warning(f"vLLM request failed (attempt {attempt + 1}/{max_attempts})", state=state)
            except ValueError as e:
                last_error = e
                logger.warning(f"vLLM bad response (attempt {attempt + 1}/{max_attempts}): {str(e)[:100]}")

            if attempt < max_attempts - 1:
                if time.time() + delay >= deadline:
                    break
                self._stats.total_retries += 1
                time.sleep(delay)
                delay = min(delay * self.BACKOFF_MULTIPLIER, self.MAX_DELAY)

        self._stats.failed_requests += 1
        if self._enable_circuit_breaker:
            self._record_failure()

        logger.error(
            "vLLM all attempts failed",
            error=str(last_error)[:100] if last_error else "time budget exhausted",
            state=state,
        )
        return self._fail("upstream_failed", state, allow_fallback)

    def _fail(self, reason: str, state: Optional[str], allow_fallback: bool) -> str:
        if allow_fallback:
            self._stats.fallback_used += 1
            return self.fallback_reply
        raise UpstreamError(f"Reply generation failed ({reason}) in state {state}")

    def _call_llm(self, messages: List[Dict[str, str]], timeout: float) -> str:
        """
        Single HTTP call, no retry / circuit breaker.

        Tests patch this method.
        """
        base_url_normalized = self.base_url.rstrip("/")

        response = requests.post(
            f"{base_url_normalized}/chat/completions",
            json={
                "model": self.model,
                "messages": messages,
                "temperature": self.temperature,
                "max_tokens": self.max_tokens,
            },
            timeout=timeout,
        )
        response.raise_for_status()

        data = response.json()
        choices = data.get("choices", [])
        if not choices:
            raise ValueError("Empty response from vLLM")

        message = choices[0].get("message", {})
        content = (message.get("content") or "").strip()

        if not content:
            raise ValueError("Empty content in response from vLLM")

        return content

    # =========================================================================
    # CIRCUIT BREAKER
    # =========================================================================

    def _is_circuit_open(self) -> bool:
        if not self._circuit_breaker.is_open:
            return False

        if time.time() >= self._circuit_breaker.open_until:
            logger.info("Circuit breaker attempting recovery (half-open state)")
            self._circuit_breaker.is_open = False
            return False

        return True

    def _record_failure(self) -> None:
        self._circuit_breaker.failures += 1
        self._circuit_breaker.last_failure_time = time.time()

        if self._circuit_breaker.failures >= self.CIRCUIT_BREAKER_THRESHOLD:
            self._circuit_breaker.is_open = True
            self._circuit_breaker.open_until = time.time() + self.CIRCUIT_BREAKER_TIMEOUT
            self._stats.circuit_breaker_trips += 1

            logger.error(
                "Circuit breaker opened",
                failures=self._circuit_breaker.failures,
                timeout=self.CIRCUIT_BREAKER_TIMEOUT,
            )

    def _reset_failures(self) -> None:
        self._circuit_breaker.failures = 0
        if self._circuit_breaker.is_open:
            logger.info("Circuit breaker closed after successful request")
            self._circuit_breaker.is_open = False

    # =========================================================================
    # STATS & HEALTH
    # =========================================================================

    def get_stats_dict(self) -> Dict[str, Any]:
        return {
            "total_requests": self._stats.total_requests,
            "successful_requests": self._stats.successful_requests,
            "failed_requests": self._stats.failed_requests,
            "fallback_used": self._stats.fallback_used,
            "total_retries": self._stats.total_retries,
            "circuit_breaker_trips": self._stats.circuit_breaker_trips,
            "success_rate": round(self._stats.success_rate, 1),
            "average_response_time_ms": round(self._stats.average_response_time_ms, 1),
            "circuit_breaker_open": self._circuit_breaker.is_open,
        }

    def health_check(self) -> bool:
        """True if the server answers /health."""
        try:
            base = self.base_url.rstrip("/")
            if base.endswith("/v1"):
                base = base[:-3]
            response = requests.get(base + "/health", timeout=5)
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False
