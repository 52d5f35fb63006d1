# ============================================================================
# pagegraph/__init__.py
# Causal queries over browser page graphs
# ============================================================================
#
# PURPOSE:
# Loads PageGraph recordings (GraphML traces of everything a page did while
# loading) and answers causal questions about them: what happened downstream
# of an action, which document a script belongs to, which network resources
# a content-blocking rule matches.
#
# KEY MODULES:
# - graph/: identifiers, node/edge variants, the store, frame merge,
#   DOM-root attribution, the causal effects engine and queries
# - io/: GraphML reader and companion-frame loader
# - filters/: adblock rule matching and registrable-domain helpers
# - cli/: the `pagegraph` command
#
# ============================================================================

__version__ = "0.4.0"
