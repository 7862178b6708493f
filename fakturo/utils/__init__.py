"""
Fakturo - Utilities Package
"""
