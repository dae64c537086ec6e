"""Tests for onboard."""
