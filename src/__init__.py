"""Padron Gateway - CUIT/CUIL enrichment backed by the AFIP taxpayer registry.

Architecture Overview:
- **API Layer**: FastAPI surface exposing the enrichment lookup
- **Core Layer**: Configuration, logging, tracing and the error taxonomy
- **Domain Layer**: CUIT/CUIL validation and the normalized record models
- **Infrastructure Layer**: WSAA login tickets, Padron A5 SOAP client,
  shared cache and outbound HTTP
- **Services Layer**: Lookup strategies and the enrichment orchestrator
"""
