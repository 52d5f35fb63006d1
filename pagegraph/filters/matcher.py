# ============================================================================
# pagegraph/filters/matcher.py
# Network Filter Matching (adblock rules)
# ============================================================================
#
# PURPOSE:
# Adapter between the graph queries and Brave's adblock engine. The queries
# own request classification and the third-party decision; the engine owns
# rule parsing and matching semantics.
#
# KEY CONCEPTS:
# 1. FilterRequest: normalized description of one request to check
# 2. Registrable domain: "ads.example.co.uk" -> "example.co.uk" (tldextract,
#    bundled public suffix snapshot, no network access by default)
# 3. Exception mode: only report requests an exception rule (@@...) covers
#
# ============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional, Tuple

import adblock
import tldextract

from pagegraph.base.config import get_config

logger = logging.getLogger(__name__)


@lru_cache(maxsize=4)
def _extractor(suffix_list_urls: Tuple[str, ...]) -> tldextract.TLDExtract:
    return tldextract.TLDExtract(suffix_list_urls=suffix_list_urls)


def get_domain(host: str) -> str:
    """
    Registrable domain of `host`, or "" when it has none (IP addresses,
    bare public suffixes). "localhost" has no public suffix but is its own
    domain.
    """
    if host == "localhost":
        return host
    extracted = _extractor(get_config().filters.suffix_list_urls)(host)
    if not extracted.domain or not extracted.suffix:
        return ""
    return f"{extracted.domain}.{extracted.suffix}"


@dataclass(frozen=True)
class FilterRequest:
    url: str
    hostname: str
    source_hostname: str
    request_type: str
    # None when the page itself has no registrable domain
    third_party: Optional[bool]


class RuleMatcher:
    """Compiled set of adblock rules (ABP syntax)."""

    def __init__(self, patterns: Iterable[str]):
        self.patterns = list(patterns)
        filter_set = adblock.FilterSet(debug=True)
        filter_set.add_filter_list("\n".join(self.patterns))
        self.engine = adblock.Engine(filter_set=filter_set)
        logger.debug("Compiled %d filter rules", len(self.patterns))

    def matches(self, request: FilterRequest, only_exceptions: bool = False) -> bool:
        result = self.engine.check_network_urls_with_hostnames_subset(
            request.url,
            request.hostname,
            request.source_hostname,
            request.request_type,
            request.third_party,
            False,
            True,
        )
        if only_exceptions:
            return result.exception is not None
        return result.matched


def third_party_flag(source_domain: str, request_domain: str) -> Optional[bool]:
    if not source_domain:
        return None
    return source_domain != request_domain
