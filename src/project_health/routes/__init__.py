"""HTTP routers for project health service."""
