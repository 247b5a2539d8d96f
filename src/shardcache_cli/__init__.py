"""Operator CLI for shardcache."""
