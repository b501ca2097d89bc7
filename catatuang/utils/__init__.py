"""Rupiah helpers and chat reply texts."""

from catatuang.utils.currency import format_rupiah, format_signed_rupiah, parse_rupiah

__all__ = ["format_rupiah", "format_signed_rupiah", "parse_rupiah"]
