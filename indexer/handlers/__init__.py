"""indexer.handlers

One state-transition function per (contract role, event name).
"""
