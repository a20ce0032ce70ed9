"""Test support code for the station suite: fake drivers, observers and sinks.

This package contains no tests.
"""
