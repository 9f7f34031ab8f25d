"""AFIP web service clients: WSAA authentication and Padron A5 lookups."""
