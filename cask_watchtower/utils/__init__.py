"""
Logging and error handling utilities.
"""
