
"""Reader for PX submission template files.

A template is a .px file whose MTD lines carry values overriding the
computed manifest header, e.g.

  MTD	submitter_name	Jane Doe

"""

import io
import logging

logger = logging.getLogger(__name__)

METADATA_TAG = 'MTD'

# key names from version 1.x of the .px format
_key_name_overrides = {
    'name': 'submitter_name',
    'email': 'submitter_email',
    'affiliation': 'submitter_affiliation',
    'title': 'project_title',
    'description': 'project_description',
    'type': 'submission_type',
    'pride_login': 'submitter_pride_login',
    'pubmed': 'pubmed_id',
}

_obsolete_keys = {'comment'}

def read_template_file(path):
    """Return the template parameters of a .px file as a dict.

    :param path: The template file path

    Keys are lower-cased, v1.x key names are renamed and the obsolete
    'comment' key is dropped.  The first occurrence of a key wins.
    """
    parameters = {}
    with io.open(path, 'r', encoding='utf-8-sig') as f:
        for line in f:
            line = line.rstrip('\r\n')
            if not line.startswith(METADATA_TAG):
                continue
            cols = line.split('\t', 2)
            if len(cols) < 3 or not cols[1]:
                continue
            key = cols[1].strip().lower()
            key = _key_name_overrides.get(key, key)
            if key in _obsolete_keys or key in parameters:
                continue
            parameters[key] = cols[2].strip()
    logger.debug('Read %d template parameters from "%s"' % (len(parameters), path))
    return parameters
