"""Test suite for sqlcache."""
