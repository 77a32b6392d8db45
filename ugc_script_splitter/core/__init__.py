"""Core text stage and per-run context.

WHY: The parts of the pipeline that never talk to the network (data model,
script segmentation, location/energy/camera derivation) live here so they
can be tested without any model client.

HOW: models.py defines the dataclasses, segmenter.py splits scripts into
speakable chunks, context.py derives the per-segment settings.

RULES:
- No I/O in this package (logging only)
- Data model dataclasses are the contract between stages — change with care
"""
