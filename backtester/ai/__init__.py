"""
External advisor integration.

Modules:
- advisor_client: httpx client for OpenAI-compatible / Ollama servers
- response_parser: fallible parser chain for free-form replies
- prompts: context text builders for the advised policies
- models: AdvisorReply and usage metrics
"""

from backtester.ai.advisor_client import Advisor, AdvisorClient
from backtester.ai.models import AdvisorReply, AIMetrics
from backtester.ai.response_parser import ParseResult, parse_response, repair_json

__all__ = [
    "AIMetrics",
    "Advisor",
    "AdvisorClient",
    "AdvisorReply",
    "ParseResult",
    "parse_response",
    "repair_json",
]
