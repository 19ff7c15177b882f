"""Turning token usage into credit charges."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from agentchat.config import ModelSpec
from agentchat.streaming.events import Usage

INSUFFICIENT_CREDITS_MESSAGE = "You have run out of credits. Please top up your balance to continue chatting."

_QUANTUM = Decimal("0.00000001")
_MILLION = Decimal(1_000_000)


def quantize(amount: Decimal) -> Decimal:
    """Round to 8 decimal places."""
    return amount.quantize(_QUANTUM, rounding=ROUND_HALF_UP)


def compute_cost(usage: Usage, spec: ModelSpec) -> Decimal:
    """Price of *usage* under the model's per-million-token rates."""
    input_cost = Decimal(str(spec.input_cost_per_million)) * usage.prompt_tokens / _MILLION
    output_cost = Decimal(str(spec.output_cost_per_million)) * usage.completion_tokens / _MILLION
    return quantize(input_cost + output_cost)
