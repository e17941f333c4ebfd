"""Tests for the IntelliFire Link integration."""
