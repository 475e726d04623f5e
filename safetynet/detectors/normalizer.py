"""
safetynet/detectors/normalizer.py
Evasion-resistant canonical form for blocklist matching.
Pure Python, no state. normalize() is idempotent.

  "f u c k" / "f.u.c.k" / "fuuuck" / "f_u_c_k"  ->  "fuck"
"""

import re

# Spacing tricks: "f u c k", "f.u.c.k", "f-u-c-k", "f_u_c_k"
_SEPARATORS = re.compile(r'[\s.\-_]+')

# Look-alike characters. Each maps to a letter, so applying them
# in any order gives the same result.
SUBSTITUTIONS = {
    '@': 'a',
    '4': 'a',
    '3': 'e',
    '1': 'i',
    '!': 'i',
    '|': 'i',
    '0': 'o',
    '$': 's',
    '5': 's',
    '7': 't',
    '+': 't',
}
_SUBSTITUTION_TABLE = str.maketrans(SUBSTITUTIONS)

_RUN_OF_THREE = re.compile(r'(.)\1{2,}', re.DOTALL)
_RUN_OF_TWO   = re.compile(r'(.)\1+', re.DOTALL)


def normalize(text: str) -> str:
    """
    Canonicalize text for substring matching.

    Steps run in fixed order, each on the previous output:
      1. lower-case
      2. drop whitespace, '.', '-', '_'
      3. look-alike substitution (SUBSTITUTIONS)
      4. runs of 3+ identical chars -> 2
      5. runs of 2+ identical chars -> 1
    """
    if not text:
        return ''
    normalized = text.lower()
    normalized = _SEPARATORS.sub('', normalized)
    normalized = normalized.translate(_SUBSTITUTION_TABLE)
    normalized = _RUN_OF_THREE.sub(r'\1\1', normalized)
    normalized = _RUN_OF_TWO.sub(r'\1', normalized)
    return normalized
