"""HTTP surface — routers, dependencies, middleware and the error envelope."""
