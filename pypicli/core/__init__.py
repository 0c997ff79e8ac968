"""Core components for the pypicli application.

This package contains the distribution validation and upload pipeline, the
configuration manager and the error types shared by every command.
"""
