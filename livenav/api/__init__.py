"""HTTP clients for the external geocoding and routing providers."""
