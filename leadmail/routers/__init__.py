"""HTTP routers for operator tooling."""
