"""Module cli: the `pagegraph` command line entry point."""
