"""
Chainwatch

Contract event indexer and health monitor:
- Event ingestion from the chain into a durable record store
- Resilient batch persistence with retries and reconciliation
- Composite health status of network, contract, indexer and credentials
- REST API for recent events, health history and statistics
"""

__version__ = "0.1.0"
