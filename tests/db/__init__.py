"""Executor, driver, statement and settings tests."""
