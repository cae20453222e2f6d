"""HTTP API: application factory, middleware, dependencies and routers."""
