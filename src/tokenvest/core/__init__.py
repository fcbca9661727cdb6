"""
tokenvest core: contracts, errors, settings, logging and metrics.
"""
