"""Tests for python-easee-http."""
