"""
MQ Relay
========

Relays messages from an IBM MQ queue into a streaming ingestion sink in
micro-batches, confirming each batch's durability before reading more.
"""

__version__ = "1.0.0"
