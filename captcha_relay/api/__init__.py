"""HTTP API: routes, schemas, dependencies and error handling."""
