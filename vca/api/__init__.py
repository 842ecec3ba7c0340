"""Adapter package.

Exposes the workflow engine through:
    - `http_api`: FastAPI session endpoints.
    - `cli`: one-shot staging from JSON product/container files.
"""
