"""
Load a root recording together with the recordings of its remote frames.

Out-of-process iframes are recorded into companion files next to the root
recording. Each one found is merged into the root graph in place of its
RemoteFrame node; a companion that was never written is expected and skipped.
"""

import logging
import os
from typing import Optional

from pagegraph.base.config import PageGraphConfig, get_config
from pagegraph.graph.store import PageGraph
from pagegraph.io.graphml import read_from_file

logger = logging.getLogger(__name__)


def companion_path(root_path: str, frame_id, config: Optional[PageGraphConfig] = None) -> str:
    cfg = config or get_config()
    directory = os.path.dirname(os.path.abspath(root_path))
    return os.path.join(directory, cfg.loader.frame_file_name(frame_id))


def load_page_graph(path, config: Optional[PageGraphConfig] = None) -> PageGraph:
    cfg = config or get_config()
    path = os.fspath(path)
    graph = read_from_file(path)
    if not cfg.loader.merge_frames:
        return graph

    for frame_id in graph.all_remote_frame_ids():
        frame_path = companion_path(path, frame_id, cfg)
        if not os.path.isfile(frame_path):
            logger.info("No recording for remote frame %s (%s), skipping", frame_id, frame_path)
            continue
        graph.merge_frame(read_from_file(frame_path), frame_id)
    return graph
