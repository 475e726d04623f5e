"""
safetynet: safety content-analysis pipeline.

Blocklist and moderation gate outgoing messages, the keyword corpus
scanner logs detections, the miner proposes new corpus phrases, and
the severity classifier triages safety reports.
"""

__version__ = '1.0.0'
