"""
keystore: pluggable storage backends for opaque key material.
"""

__version__ = "0.1.0"
