"""
Catatuang - Source Package

Core of a chat-driven personal finance ledger: users record income and
expenses by chatting or sending receipt photos, and a dashboard shows
day, week and month aggregates in a fixed civil timezone.

DESIGN PRINCIPLES:
1. AI suggests → Human confirms → Ledger commits
2. Every balance change happens in the same atomic unit as its row
3. Money is exact decimal, never float
4. Expected empty outcomes are values, not exceptions
5. Storage and ephemeral state are swappable
"""

__version__ = "1.0.0"
__author__ = "Catatuang Team"
