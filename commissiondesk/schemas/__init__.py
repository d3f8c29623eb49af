"""Pydantic request/response schemas for the commission API."""
