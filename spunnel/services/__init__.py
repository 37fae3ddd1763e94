"""Tunnel services: port probing, session records, establish and teardown."""
