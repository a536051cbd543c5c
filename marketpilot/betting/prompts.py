"""
Question framing for the betting strategy.

One prompt per market, embedding its name, description and the agent's
spendable balance, plus the fixed output schema every answer must follow.
"""

from decimal import Decimal
from typing import Any

from marketpilot.errors import MalformedAnswerError
from marketpilot.models import Choice, DecisionAnswer, Market
from marketpilot.schema import decode_answer

# Flat object; fields are delivered in declaration order.
DECISION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "decision": {
            "type": "string",
            "enum": ["yes", "no"],
            "description": "Whether the market will resolve yes or no",
        },
        "confidence": {
            "type": "integer",
            "minimum": 0,
            "maximum": 100,
            "description": "Confidence in the decision, 0-100",
        },
        "rationale": {
            "type": "string",
            "description": "Short reasoning behind the decision",
        },
    },
    "required": ["decision", "confidence", "rationale"],
}

PROMPT_TEMPLATE = """You are a prediction market analyst deciding whether to take a position.

Market: {name}
Description: {description}

Available balance: {balance}

Analyze this market and decide whether it will resolve "yes" or "no".
Reply with:
- decision: "yes" or "no"
- confidence: an integer from 0 to 100
- rationale: one or two sentences explaining the decision
"""


def build_prompt(market: Market, balance: Decimal) -> str:
    return PROMPT_TEMPLATE.format(
        name=market.name,
        description=market.description or "(no description)",
        balance=balance,
    )


def decode_decision(values: tuple | list) -> DecisionAnswer:
    """
    Decode a delivered answer into a ``DecisionAnswer``.

    Raises:
        MalformedAnswerError: Wrong arity or types, an unrecognized choice
            literal, or a confidence above 100.
    """
    fields = decode_answer(DECISION_SCHEMA, values)
    choice = Choice.parse(fields["decision"])
    confidence = fields["confidence"]
    if confidence > 100:
        raise MalformedAnswerError(
            f"Confidence {confidence} exceeds 100", field="confidence"
        )
    return DecisionAnswer(
        choice=choice,
        confidence=confidence,
        rationale=fields["rationale"],
    )
