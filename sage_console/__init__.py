"""
SaGe query console backend.
"""
