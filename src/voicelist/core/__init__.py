# Core module - Business logic

"""
Core functionality: settings, audio capture, recognition providers and
transcript normalization.
"""
