"""Pytest configuration for all tests."""

import os
import sys

# Make the shared in-memory store importable from every test directory
tests_dir = os.path.abspath(os.path.dirname(__file__))
if tests_dir not in sys.path:
    sys.path.insert(0, tests_dir)
