"""Module __init__: shared foundations (configuration and logging setup)."""
#
# WHAT'S IN THIS MODULE:
# - config.py: environment-driven settings, get_config/set_config, setup_logging
#
