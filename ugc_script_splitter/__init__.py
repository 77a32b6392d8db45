"""UGC Script Splitter — marketing script to timed video-generation prompts.

WHY: Text-to-video models generate short clips (~8 seconds). A marketing
script has to be cut into speakable pieces, and each piece has to become a
structured prompt that keeps the same character, voice, and scene from clip
to clip. This package does both and serves the result over HTTP.

HOW: Three-stage pipeline — segment (pure text splitting), assemble prompts
(templates + shared context), generate (resilient model calls with JSON
recovery and continuity chaining). Each stage is independently testable.

RULES:
- The segmenter never performs I/O
- All upstream model calls go through the resilience layer
- Output segment order always matches script order
"""

__version__ = "0.1.0"
