"""Countdown image rendering."""
