"""
Text-Generation Client
Wraps the Anthropic API behind the circuit breaker and records token usage per call
"""

import time
from decimal import Decimal
from typing import Any, Dict, Optional

from anthropic import Anthropic, APIError
from sqlalchemy.orm import Session
import structlog

from app.config import settings
from app.errors import UpstreamGenerationError
from app.models.ai_usage_log import AIUsageLog
from app.services.monitoring.circuit_breakers import get_llm_breaker, CircuitBreakerError

logger = structlog.get_logger(__name__)

# Per 1K tokens
CLAUDE_PRICING = {
    'claude-sonnet-4-5-20250929': {'input': 0.003, 'output': 0.015},
    'claude-haiku-4-5-20251001': {'input': 0.001, 'output': 0.005},
    # Fallback for unknown models
    'default': {'input': 0.003, 'output': 0.015}
}


def calculate_api_cost(model_name: str, input_tokens: int, output_tokens: int) -> Decimal:
    """
    Calculate API cost in USD based on model and token usage.

    Example:
        cost = calculate_api_cost('claude-sonnet-4-5-20250929', 1000, 500)
        # Returns: Decimal('0.010500')
    """
    pricing = CLAUDE_PRICING.get(model_name, CLAUDE_PRICING['default'])
    input_cost = (input_tokens / 1000) * pricing['input']
    output_cost = (output_tokens / 1000) * pricing['output']
    return Decimal(str(input_cost + output_cost)).quantize(Decimal('0.000001'))


def record_usage(
    db: Session,
    feature: str,
    model: str,
    input_tokens: int,
    output_tokens: int,
    metadata: Optional[dict] = None
) -> None:
    """
    Persist one AIUsageLog row. Best-effort: failures are logged, never raised.
    """
    try:
        db.add(AIUsageLog(
            feature=feature,
            model=model,
            prompt_tokens=input_tokens,
            completion_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            estimated_cost_usd=calculate_api_cost(model, input_tokens, output_tokens),
            metadata_=metadata or {},
        ))
        db.commit()
    except Exception as e:
        db.rollback()
        logger.warning("ai_usage_log_failed", feature=feature, error=str(e))


class LLMClient:
    """
    Black-box text generation for the feedback loop.

    Two contracts:
    - generate_text: plain completion (reference entry prose)
    - generate_structured: forced tool call returning a JSON object that
      matches the supplied input schema

    Any API error, open circuit, empty completion or missing tool call is
    raised as UpstreamGenerationError; nothing is defaulted.
    """

    def __init__(self, client: Any = None, model: Optional[str] = None):
        if client is not None:
            self.client = client
        elif settings.anthropic_api_key:
            self.client = Anthropic(
                api_key=settings.anthropic_api_key,
                timeout=settings.llm_timeout_seconds,
            )
        else:
            logger.warning("llm_client_unconfigured", reason="ANTHROPIC_API_KEY missing")
            self.client = None
        self.model = model or settings.anthropic_model

    def _create(self, feature: str, **kwargs):
        if self.client is None:
            raise UpstreamGenerationError("Text generation is not configured", feature=feature)

        breaker = get_llm_breaker()
        start_time = time.time()
        try:
            message = breaker.call(self.client.messages.create, **kwargs)
        except CircuitBreakerError:
            logger.error("llm_circuit_open", feature=feature)
            raise UpstreamGenerationError("Text generation unavailable (circuit open)", feature=feature)
        except APIError as e:
            logger.error("llm_api_error", feature=feature, error=str(e))
            raise UpstreamGenerationError(f"Text generation failed: {e}", feature=feature) from e

        logger.info("llm_call_completed",
                    feature=feature,
                    model=kwargs.get("model"),
                    execution_time_ms=int((time.time() - start_time) * 1000))
        return message

    def _log_usage(self, db: Optional[Session], feature: str, model: str, message, metadata: Optional[dict]) -> None:
        usage = getattr(message, "usage", None)
        if db is None or usage is None:
            return
        record_usage(
            db,
            feature=feature,
            model=model,
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
            metadata=metadata,
        )

    def generate_text(
        self,
        system_prompt: str,
        user_prompt: str,
        feature: str,
        db: Optional[Session] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: float = 0.2,
        metadata: Optional[dict] = None
    ) -> str:
        """
        Plain-text completion.

        Returns:
            Completion text, stripped

        Raises:
            UpstreamGenerationError: API failure or empty completion
        """
        model_name = model or self.model
        message = self._create(
            feature,
            model=model_name,
            max_tokens=max_tokens or settings.llm_max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )

        text = "".join(
            getattr(block, "text", "") for block in (message.content or [])
            if getattr(block, "type", None) == "text"
        ).strip()
        if not text:
            raise UpstreamGenerationError("Text generation returned an empty completion", feature=feature)

        self._log_usage(db, feature, model_name, message, metadata)
        return text

    def generate_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        tool_name: str,
        input_schema: Dict[str, Any],
        feature: str,
        tool_description: str = "",
        db: Optional[Session] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        metadata: Optional[dict] = None
    ) -> Dict[str, Any]:
        """
        Schema-constrained completion via a forced tool call.

        Returns:
            The tool call input (a dict matching input_schema's top level)

        Raises:
            UpstreamGenerationError: API failure, no tool call, or non-object payload
        """
        model_name = model or self.model
        message = self._create(
            feature,
            model=model_name,
            max_tokens=max_tokens or settings.llm_max_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            tools=[{
                "name": tool_name,
                "description": tool_description or f"Return the {tool_name} result.",
                "input_schema": input_schema,
            }],
            tool_choice={"type": "tool", "name": tool_name},
        )

        tool_call = next(
            (block for block in (message.content or [])
             if getattr(block, "type", None) == "tool_use" and getattr(block, "name", None) == tool_name),
            None
        )
        if tool_call is None:
            raise UpstreamGenerationError(f"No {tool_name} tool call returned", feature=feature)

        payload = tool_call.input
        if not isinstance(payload, dict):
            raise UpstreamGenerationError(f"Malformed {tool_name} payload", feature=feature)

        missing = [key for key in input_schema.get("required", []) if key not in payload]
        if missing:
            raise UpstreamGenerationError(
                f"{tool_name} payload missing required fields: {', '.join(missing)}",
                feature=feature
            )

        self._log_usage(db, feature, model_name, message, metadata)
        return payload


__all__ = ["LLMClient", "calculate_api_cost", "record_usage", "CLAUDE_PRICING"]
