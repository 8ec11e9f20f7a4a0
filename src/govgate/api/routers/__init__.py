"""API routers package. One module per provider family plus stats and health."""
