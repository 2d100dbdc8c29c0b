"""Inference MCP Server - Type inference for Angular template bindings."""

import asyncio

from fastmcp import FastMCP

from .tools import build_hover_oracle, close_hover_oracle, register_inference_tools

__version__ = "0.1.0"

# Initialize the Inference MCP server
mcp = FastMCP(
    name="BindInfer Inference Server",
    version=__version__,
    instructions="""
        Inference server provides TypeScript types for component bindings:

        Core Tools:
        - infer_binding_types: Types for binding expressions taken from a parent template
        - get_inference_cache_stats: Analysis context cache occupancy

        Types come from the Angular language server when one is configured
        (BINDINFER_LANGUAGE_SERVER_COMMAND), and from the owner component's
        own declarations otherwise.

        Best Practices:
        - Pass the component file that owns the template, not the template file
        - Treat is_inferred=False entries as "unknown" placeholders
        - Prefer results with confidence "high"; "medium" means a union or intersection
    """,
)

# Register all inference tools
hover_oracle = build_hover_oracle()
context_cache = register_inference_tools(mcp, oracle=hover_oracle)


async def serve() -> None:
    """Run the server over stdio and stop the language server on the way out."""
    try:
        await mcp.run_async()
    finally:
        await close_hover_oracle(hover_oracle)


if __name__ == "__main__":
    asyncio.run(serve())
