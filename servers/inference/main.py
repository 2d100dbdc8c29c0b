"""Entry point for BindInfer Inference Server."""

import asyncio
import logging
import sys
from pathlib import Path

# Add the src directory to the Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root / "src"))

from bindinfer.inference_server.config import get_config
from bindinfer.inference_server.server import serve

if __name__ == "__main__":
    # stdout carries the MCP protocol, logs go to stderr
    logging.basicConfig(
        level=getattr(logging, get_config().log_level, logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Server shutdown requested")
