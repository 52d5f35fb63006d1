"""Module filters: adblock rule matching and registrable-domain helpers."""

from pagegraph.filters.matcher import (
    FilterRequest,
    RuleMatcher,
    get_domain,
    third_party_flag,
)

__all__ = ["FilterRequest", "RuleMatcher", "get_domain", "third_party_flag"]
