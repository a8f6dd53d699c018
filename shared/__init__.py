"""
Shared infrastructure for the kitchen feed: settings, logging, constants, errors.
"""
