"""Typed records exchanged between the store, the pipeline and the chain."""
