"""MCP stdio server exposing the paper tools, topic resources and search prompt."""

import logging

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

from arxiv_feed import DEFAULT_MAX_RESULTS, ArxivSearchGateway
from config import ChatConfig
from paper_store import PaperStore
from paper_tools import (
    FOLDERS_URI,
    build_search_prompt,
    lookup_paper,
    render_topic_markdown,
    render_topics_markdown,
)
from tool_catalog import serialize_tool_result

SERVER_NAME = "research"

LOGGER = logging.getLogger(__name__)


def build_server(store: PaperStore, gateway: ArxivSearchGateway) -> FastMCP:
    """Create a FastMCP server bound to one paper store."""
    mcp = FastMCP(SERVER_NAME)

    @mcp.tool()
    def search_papers(topic: str, max_results: int = DEFAULT_MAX_RESULTS) -> list[str]:
        """Search for papers on arXiv based on a topic and store their information.

        Args:
            topic: The topic to search for
            max_results: Maximum number of results to retrieve (default: 5)

        Returns:
            List of paper IDs found in the search
        """
        return gateway.search(topic, max_results)

    @mcp.tool()
    def extract_info(paper_id: str) -> str:
        """Search for information about a specific paper across all topic directories.

        Args:
            paper_id: The ID of the paper to look for

        Returns:
            JSON string with paper information if found, error message if not found
        """
        return serialize_tool_result(lookup_paper(store, paper_id))

    @mcp.resource(FOLDERS_URI)
    def get_available_folders() -> str:
        """List all available topic folders in the papers directory."""
        return render_topics_markdown(store)

    @mcp.resource("papers://{topic}")
    def get_topic_papers(topic: str) -> str:
        """Get detailed information about papers on a specific topic."""
        return render_topic_markdown(store, topic)

    @mcp.prompt()
    def generate_search_prompt(topic: str, num_papers: int = DEFAULT_MAX_RESULTS) -> str:
        """Generate a prompt to find and discuss academic papers on a specific topic."""
        return build_search_prompt(topic, num_papers)

    return mcp


def main() -> None:
    load_dotenv()
    config = ChatConfig.from_env()
    # stdout carries the protocol; basicConfig logs to stderr.
    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(message)s")

    store = PaperStore(config.paper_dir)
    gateway = ArxivSearchGateway(store, api_url=config.arxiv_api_url, timeout=config.arxiv_timeout_seconds)
    LOGGER.info("Starting MCP server %s with paper_dir=%s", SERVER_NAME, config.paper_dir)
    build_server(store, gateway).run(transport="stdio")


if __name__ == "__main__":
    main()
