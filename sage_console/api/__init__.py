"""
HTTP API for the SaGe query console.
"""
