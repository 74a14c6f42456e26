"""Blacklist policy evaluation for a single item.

Rules are tried in a fixed precedence and the first match wins:

1. ``authors`` entries against the item's author
2. ``title_patterns`` entries against the item's title
3. legacy ``patterns`` entries: ``"title:<text>"`` is a title rule, any
   other entry an author rule

Author and title comparisons are the normalized rules in
:mod:`leaderboard.utils.text_normalizer`.  :meth:`BlacklistMatcher.evaluate`
is conservative: if evaluating an item raises, the item is reported as
matched with reason ``error_during_check`` instead of being let through.
"""

from __future__ import annotations

from collections.abc import Callable

from leaderboard.models import Blacklist, BlacklistMatch, Item, RejectionReason
from leaderboard.models.blacklist import LEGACY_TITLE_PREFIX
from leaderboard.utils.logging import get_logger
from leaderboard.utils.text_normalizer import authors_match, title_matches

logger = get_logger(__name__)

MatchPredicate = Callable[[str | None, str | None], bool]


class BlacklistMatcher:
    """Evaluates items against one :class:`Blacklist`.

    Parameters
    ----------
    blacklist:
        The policy document.
    author_predicate / title_predicate:
        ``(value, pattern) -> bool`` comparison functions.
    """

    def __init__(
        self,
        blacklist: Blacklist,
        author_predicate: MatchPredicate = authors_match,
        title_predicate: MatchPredicate = title_matches,
    ) -> None:
        self._blacklist = blacklist
        self._author_predicate = author_predicate
        self._title_predicate = title_predicate

    @property
    def blacklist(self) -> Blacklist:
        return self._blacklist

    def check(self, item: Item) -> BlacklistMatch | None:
        """Return the first matching rule for *item*, or ``None``.  May raise."""
        for pattern in self._blacklist.authors:
            if self._author_predicate(item.author, pattern):
                return BlacklistMatch(reason=RejectionReason.BLACKLISTED_AUTHOR, matched_pattern=pattern)

        for pattern in self._blacklist.title_patterns:
            if self._title_predicate(item.title, pattern):
                return BlacklistMatch(reason=RejectionReason.BLACKLISTED_TITLE, matched_pattern=pattern)

        for entry in self._blacklist.patterns:
            if entry[: len(LEGACY_TITLE_PREFIX)].lower() == LEGACY_TITLE_PREFIX:
                if self._title_predicate(item.title, entry[len(LEGACY_TITLE_PREFIX) :]):
                    return BlacklistMatch(reason=RejectionReason.BLACKLISTED_TITLE, matched_pattern=entry)
            elif self._author_predicate(item.author, entry):
                return BlacklistMatch(reason=RejectionReason.BLACKLISTED_AUTHOR, matched_pattern=entry)

        return None

    def evaluate(self, item: Item, item_key: str | None = None) -> BlacklistMatch | None:
        """Like :meth:`check` but an exception counts as a match."""
        try:
            return self.check(item)
        except Exception as exc:
            logger.warning("blacklist_check_error", item_key=item_key, error=str(exc))
            return BlacklistMatch(reason=RejectionReason.ERROR_DURING_CHECK, matched_pattern=None)
