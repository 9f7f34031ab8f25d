"""Domain layer: CUIT/CUIL rules and the records exchanged by the lookup pipeline."""
