
"""Controlled-vocabulary (CV) string helpers for ProteomeXchange submission files.

A CV string is a bracketed 4-tuple:

  [namespace, accession, label, value]

e.g. "[MS, MS:1000031, instrument model, CUSTOM UNKNOWN MASS SPEC]".

"""

import logging
from collections import namedtuple

logger = logging.getLogger(__name__)

MAX_CV_VALUE_LENGTH = 200

# placeholder for missing label slots when repairing hand-edited CV strings
UNDEFINED_CV_PART = 'xx_Undefined_xx'

class CvParamInfo (namedtuple('CvParamInfo', ['cv_ref', 'accession', 'name', 'value'])):
    """One parsed cvParam, e.g. a modification read from a search result file."""
    __slots__ = ()

    def __new__(cls, cv_ref, accession, name, value=''):
        return super(CvParamInfo, cls).__new__(cls, cv_ref, accession, name, value)

    def to_cv(self):
        return format_cv(self.cv_ref, self.accession, self.name, self.value)

def format_cv(namespace, code, label, value=''):
    """Return the bracketed CV string for the given parts.

    :param namespace: The CV namespace, e.g. 'MS' or 'NEWT'
    :param code: The ontology accession, e.g. 'MS:1000031'
    :param label: The human-readable term name
    :param value: Optional value, truncated to MAX_CV_VALUE_LENGTH characters
    """
    if not value:
        value = ''
    elif len(value) > MAX_CV_VALUE_LENGTH:
        logger.warning('CV value parameter truncated since too long: %s' % value)
        value = value[0:MAX_CV_VALUE_LENGTH]

    return '[%s, %s, %s, %s]' % (namespace, code, label, value)

def validate_cv(text):
    """Return text with exactly four comma-separated parts if it is a bracketed CV.

    Non-bracketed text is returned unchanged, as is a CV which already
    has four parts. Otherwise the trimmed parts are re-joined and missing
    parts appended: label slots get UNDEFINED_CV_PART and the value slot
    is left empty.
    """
    trimmed = text.strip()
    if not (trimmed.startswith('[') and trimmed.endswith(']')):
        return text

    parts = trimmed.lstrip('[').rstrip(']').split(',')
    if len(parts) == 4:
        return text

    parts = [ part.strip() for part in parts ]
    while len(parts) < 4:
        if len(parts) < 3:
            parts.append(UNDEFINED_CV_PART)
        else:
            parts.append('')

    return '[%s]' % ', '.join(parts)
