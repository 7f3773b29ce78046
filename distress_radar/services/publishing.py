import logging
from typing import Any, Dict, Protocol

logger = logging.getLogger(__name__)


class ContentGenerator(Protocol):
    """Turns a fully populated score payload into post text."""

    def generate(self, payload: Dict[str, Any]) -> str: ...


class Publisher(Protocol):
    """Posts text. Returns True only when the post went out."""

    def publish(self, text: str, payload: Dict[str, Any]) -> bool: ...


class TemplateContentGenerator:
    """Plain-text rendering of an alert payload."""

    def generate(self, payload: Dict[str, Any]) -> str:
        lines = [f"${payload.get('ticker', '?')} distress score {payload.get('score', 0):.0f}"]
        if payload.get('tier'):
            lines[0] += f" ({payload['tier']})"
        if payload.get('reason'):
            lines.append(payload['reason'])
        if payload.get('outcome_summary'):
            lines.append(payload['outcome_summary'])
        return "\n".join(lines)


class DryRunPublisher:
    """Logs instead of posting; never reports success so nothing is marked alerted."""

    def __init__(self):
        self.published = []

    def publish(self, text: str, payload: Dict[str, Any]) -> bool:
        self.published.append((text, payload))
        logger.info("Dry run, not posting", extra={'ticker': payload.get('ticker'), 'chars': len(text)})
        return False
