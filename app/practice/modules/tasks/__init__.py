"""Firm tasks with calendar due dates."""
