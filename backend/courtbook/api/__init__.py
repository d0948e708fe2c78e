"""HTTP-facing glue: dependency providers for the route modules."""
