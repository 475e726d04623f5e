"""
safetynet/detectors: normalizer, blocklist, corpus scanner, severity.
"""

from safetynet.detectors.normalizer import normalize
from safetynet.detectors.blocklist import BlocklistFilter, filter_message, add_blocked_word
from safetynet.detectors.keyword_detector import KeywordScanner
from safetynet.detectors.severity import SeverityService, classify_severity

__all__ = [
    "normalize",
    "BlocklistFilter",
    "filter_message",
    "add_blocked_word",
    "KeywordScanner",
    "SeverityService",
    "classify_severity",
]
