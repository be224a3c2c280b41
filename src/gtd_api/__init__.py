"""
GTD task manager backend package.

The FastAPI application lives in ``gtd_api.main`` (``app`` for servers,
``create_app`` for tests and embedding).
"""
