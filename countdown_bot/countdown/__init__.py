"""Countdown message publishing."""
