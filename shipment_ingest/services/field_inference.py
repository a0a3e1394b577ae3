from __future__ import annotations

import json
import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from openai import OpenAI, OpenAIError

"""Field inference capability.

Given a header the alias tables do not know and a list of canonical candidates,
return the best candidate plus a confidence. Any API or parse failure yields
None; the mapper then treats the header as unmapped.
"""

__all__ = [
    "FieldInference",
    "InferenceResult",
    "OpenAIFieldInference",
    "build_field_inference",
]

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You map spreadsheet column headers from logistics shipment reports \
(ETD reports, outstation rate sheets) onto canonical field names.

Candidate fields:
{candidates}

Reply with a JSON object only:
{{"field": "<one candidate, or unknown>", "confidence": <0.0-1.0>}}"""


@dataclass(frozen=True)
class InferenceResult:
    field: str
    confidence: float


class FieldInference(Protocol):
    def infer(self, header: str, candidates: Sequence[str]) -> InferenceResult | None: ...


def _parse_reply(content: str | None) -> InferenceResult | None:
    if not content:
        return None
    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        text = text[4:] if text.lower().startswith("json") else text
    data: Any = json.loads(text)
    field = data.get("field") or data.get("mappedField")
    confidence = data.get("confidence")
    if not isinstance(field, str) or not isinstance(confidence, (int, float)):
        return None
    return InferenceResult(field=field.strip(), confidence=max(0.0, min(1.0, float(confidence))))


class OpenAIFieldInference:
    def __init__(self, client: Any, model: str = "gpt-4o-mini") -> None:
        self.client = client
        self.model = model

    def infer(self, header: str, candidates: Sequence[str]) -> InferenceResult | None:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT.format(candidates="\n".join(candidates))},
                    {"role": "user", "content": f'Header: "{header}"'},
                ],
                temperature=0.0,
                max_tokens=60,
                response_format={"type": "json_object"},
            )
            result = _parse_reply(response.choices[0].message.content)
        except OpenAIError as e:
            logger.warning(f"field inference failed for {header!r}: {e}")
            return None
        except (json.JSONDecodeError, AttributeError, IndexError, TypeError) as e:
            logger.warning(f"field inference reply for {header!r} unparseable: {e}")
            return None
        if result is not None:
            logger.debug(f"inferred {header!r} -> {result.field} ({result.confidence:.2f})")
        return result


def build_field_inference(model: str = "gpt-4o-mini") -> OpenAIFieldInference | None:
    """OpenAI-backed inference when OPENAI_API_KEY is set, else None."""
    api_key = os.getenv("OPENAI_API_KEY", "")
    if not api_key:
        logger.info("OPENAI_API_KEY not set; header inference disabled")
        return None
    return OpenAIFieldInference(OpenAI(api_key=api_key), model=model)
