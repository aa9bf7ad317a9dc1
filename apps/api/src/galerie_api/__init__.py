"""HTTP surface for Galerie (FastAPI application and routers)."""
