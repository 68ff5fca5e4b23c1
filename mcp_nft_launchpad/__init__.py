"""
NFT Launchpad Package Initialization

This package runs phased NFT collection launches behind the Model Context Protocol (MCP).
A launch moves through a Dutch auction, a pre-commit window, an allowlist sale and a
public sale, and reveals item metadata batch by batch once enough items are minted.

The package includes:
- Sale phase clock and Dutch auction pricing
- FIFO pre-commit queue with partial settlement
- Batch reveal assignment over an interval set
- Launch orchestration with atomic, refund-safe mints
- Launch definitions loaded from JSON files
- Rate limiting and custom error handling
- MCP server implementation for easy integration
"""
