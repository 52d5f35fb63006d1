# ============================================================================
# pagegraph/base/config.py
# Application Configuration Management
# ============================================================================
#
# PURPOSE:
# Defines every tunable setting for loading and querying page graphs.
# Settings come from environment variables (PAGEGRAPH_*) so batch jobs and
# the CLI can be adjusted without code changes.
#
# KEY CONCEPTS:
# 1. Frozen dataclasses: one immutable section per concern
# 2. Environment variables: PAGEGRAPH_LOG_LEVEL=DEBUG etc.
# 3. Singleton: one shared config per process (get_config / set_config)
#
# ============================================================================

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from pagegraph.errors import ErrorCode, PageGraphError


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


# ============================================================================
# Logging Configuration
# ============================================================================

@dataclass(frozen=True)
class LogConfig:
    # DEBUG also reports attribution fallbacks taken on module-script cycles
    level: str = "WARNING"

    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


# ============================================================================
# Loader Configuration
# ============================================================================
# Controls how companion recordings of remote frames are discovered.

@dataclass(frozen=True)
class LoaderConfig:
    # Companion file name, relative to the directory of the root recording.
    # `{frame_id}` is replaced by the 32 character upper-case frame token.
    frame_file_pattern: str = "page_graph_{frame_id}.0.graphml"

    # Splice companion frame recordings into the root graph after loading
    merge_frames: bool = True

    def frame_file_name(self, frame_id) -> str:
        return self.frame_file_pattern.format(frame_id=frame_id)


# ============================================================================
# Filter Matching Configuration
# ============================================================================

@dataclass(frozen=True)
class FilterConfig:
    # Public suffix list sources for tldextract. Empty means the snapshot
    # bundled with tldextract is used and nothing is fetched.
    suffix_list_urls: Tuple[str, ...] = ()


# ============================================================================
# Batch Analysis Configuration
# ============================================================================

@dataclass(frozen=True)
class AnalysisConfig:
    # Worker processes used when computing statistics over many recordings
    max_workers: int = 2


# ============================================================================
# Master Configuration Container
# ============================================================================

@dataclass(frozen=True)
class PageGraphConfig:
    log: LogConfig = field(default_factory=LogConfig)
    loader: LoaderConfig = field(default_factory=LoaderConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)

    debug: bool = False

    @classmethod
    def from_env(cls) -> "PageGraphConfig":
        debug = _env_bool("PAGEGRAPH_DEBUG", "false")

        log = LogConfig(
            level=os.getenv("PAGEGRAPH_LOG_LEVEL", "DEBUG" if debug else "WARNING"),
        )

        pattern = os.getenv("PAGEGRAPH_FRAME_FILE_PATTERN", LoaderConfig.frame_file_pattern)
        if "{frame_id}" not in pattern:
            raise PageGraphError(
                ErrorCode.CONFIG_INVALID,
                "PAGEGRAPH_FRAME_FILE_PATTERN must contain '{frame_id}'",
                details={"value": pattern},
            )
        loader = LoaderConfig(
            frame_file_pattern=pattern,
            merge_frames=_env_bool("PAGEGRAPH_MERGE_FRAMES", "true"),
        )

        # Split "https://a/list.dat,https://b/list.dat" into a tuple
        urls_str = os.getenv("PAGEGRAPH_SUFFIX_LIST_URLS", "")
        filters = FilterConfig(
            suffix_list_urls=tuple(u.strip() for u in urls_str.split(",") if u.strip()),
        )

        try:
            max_workers = int(os.getenv("PAGEGRAPH_MAX_WORKERS", "2"))
        except ValueError as e:
            raise PageGraphError(
                ErrorCode.CONFIG_INVALID,
                "PAGEGRAPH_MAX_WORKERS must be an integer",
                details={"value": os.getenv("PAGEGRAPH_MAX_WORKERS")},
            ) from e
        analysis = AnalysisConfig(max_workers=max(1, max_workers))

        return cls(
            log=log,
            loader=loader,
            filters=filters,
            analysis=analysis,
            debug=debug,
        )


# ============================================================================
# Global Configuration Singleton
# ============================================================================

_config: Optional[PageGraphConfig] = None


def get_config() -> PageGraphConfig:
    """
    Get the global configuration instance, loading it from the environment
    on first use.
    """
    global _config
    if _config is None:
        _config = PageGraphConfig.from_env()
    return _config


def set_config(config: Optional[PageGraphConfig]) -> None:
    """
    Replace the global configuration (mainly used for testing).
    Passing None forces the next get_config() to re-read the environment.
    """
    global _config
    _config = config


def setup_logging(config: Optional[PageGraphConfig] = None) -> None:
    """
    Configure Python's logging system based on our settings.

    Call this once at application startup (the CLI does). Library code only
    ever logs through module loggers.
    """
    cfg = config or get_config()

    handlers: List[logging.Handler] = [logging.StreamHandler()]

    logging.basicConfig(
        level=getattr(logging, cfg.log.level.upper(), logging.WARNING),
        format=cfg.log.format,
        handlers=handlers,
        force=True,
    )
