"""Lending protocol integrations."""
