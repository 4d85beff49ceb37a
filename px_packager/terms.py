
"""Controlled terms used throughout px_packager."""

from deriva.core import AttrDict

def _attrdict_from_strings(*strings):
    new = AttrDict()
    for prefix, term in [ s.split(':') for s in strings ]:
        if prefix not in new:
            new[prefix.replace('-', '_')] = AttrDict()
        if term.replace('-', '_') not in new[prefix.replace('-', '_')]:
            new[prefix.replace('-', '_')][term.replace('-', '_')] = '%s:%s' % (prefix, term)
    return new

# structured access to controlled terms we will use in this code...
terms = _attrdict_from_strings(
    'px_file_type:Result',
    'px_file_type:ResultSearchId',
    'px_file_type:Raw',
    'px_file_type:Search',
    'px_file_type:Peak',
    'px_file_type:Undefined',
    'outcome:success',
    'outcome:file-not-found',
    'outcome:no-fasta',
    'outcome:failed',
    'submission_type:PARTIAL',
    'submission_type:COMPLETE',
)

def term_label(term):
    """Return the bare label of a controlled term, e.g. 'PARTIAL' for 'submission_type:PARTIAL'."""
    return term.split(':', 1)[1]
