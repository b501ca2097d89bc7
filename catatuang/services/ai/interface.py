"""
Transaction Parser Interface

The AI model is a black box to the ledger: text or an image goes in,
and a typed `ParsedCandidate` comes out, or None on failure. Callers
decide what to do with a failure; parsers never retry.
"""

from abc import ABC, abstractmethod
from typing import Optional

from catatuang.models.ledger import ParsedCandidate


class TransactionParser(ABC):
    """Turns free text or receipt photos into transaction candidates."""

    @abstractmethod
    async def parse_text(self, text: str) -> Optional[ParsedCandidate]:
        """Parse a chat message such as "beli ayam 10rb"."""
        pass

    @abstractmethod
    async def parse_image(self, image_bytes: bytes, mime_type: str) -> Optional[ParsedCandidate]:
        """Parse a receipt photo. The total paid becomes the amount."""
        pass

    @abstractmethod
    async def revise(self, previous: ParsedCandidate, feedback: str) -> Optional[ParsedCandidate]:
        """Apply the user's free-text correction to a previous candidate."""
        pass
