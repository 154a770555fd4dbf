"""
Core domain: models, errors and access key decoding.
"""
