"""Infrastructure layer: cache backends, outbound HTTP and AFIP clients."""
