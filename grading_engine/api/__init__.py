"""
HTTP adapter (FastAPI)
"""
