"""Service layer: lookup strategies and the customer enrichment orchestrator."""
