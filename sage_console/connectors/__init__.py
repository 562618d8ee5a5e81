"""
Transport connectors for SaGe endpoints.
"""
