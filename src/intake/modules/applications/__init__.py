"""
Applications Module

The intake pipeline: start, email verification, pending application
lookup and finalize. Background sweeps evict expired rate-limit windows,
verification codes and pending applications.
"""
