"""Pytest configuration — adds src/ and tests/ to sys.path for test discovery."""

import os
import sys

# Add src/ to Python path so tests can import from msod_stat
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))
# Shared fakes live in tests/helpers.py
sys.path.insert(0, os.path.dirname(__file__))
