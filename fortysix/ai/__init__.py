"""AI reply policy and responder."""

from fortysix.ai.gate import GateDecision, QueryGate, evaluate_query

__all__ = ["GateDecision", "QueryGate", "evaluate_query"]
