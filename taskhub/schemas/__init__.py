"""Pydantic schemas shared by the service layer, the stores and the HTTP API."""
