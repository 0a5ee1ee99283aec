"""Relay-side state.

The relay keeps no per-account state; the only memory it has is a short
window of recently seen messages used to drop broker redeliveries.
"""

from pyumbrella.state.dedup import DuplicateFilter

__all__ = ["DuplicateFilter"]
