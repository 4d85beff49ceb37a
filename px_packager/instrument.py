
"""Map DMS instrument groups to PSI-MS instrument model terms.

Resolution walks INSTRUMENT_RULES in order; the first rule whose group
set contains the instrument group and whose name predicate accepts the
instrument name wins. Groups with several sub-models list their more
specific rules first.

"""

from collections import namedtuple

from .cvparam import format_cv

UNKNOWN_INSTRUMENT_ACCESSION = 'MS:1000031'
UNKNOWN_INSTRUMENT_NAME = 'instrument model'
UNKNOWN_INSTRUMENT_VALUE = 'CUSTOM UNKNOWN MASS SPEC'

InstrumentRule = namedtuple('InstrumentRule', ['groups', 'name_test', 'accession', 'description'])

def _any_name(instrument_name):
    return True

def _name_in(*names):
    def test(instrument_name):
        return instrument_name in names
    return test

def _name_startswith(prefix):
    prefix = prefix.lower()
    def test(instrument_name):
        return instrument_name.lower().startswith(prefix)
    return test

def _name_contains(fragment):
    def test(instrument_name):
        return fragment in instrument_name
    return test

_tsq_groups = frozenset({'TSQ', 'GC-TSQ'})
_qexactive_groups = frozenset({'QExactive', 'GC-QExactive', 'QEHFX'})
_exploris_groups = frozenset({'Exploris'})

INSTRUMENT_RULES = [
    # an Agilent 7890A with a 5975C detector; closest match is an LC/MS system
    InstrumentRule(frozenset({'Agilent_GC-MS'}), _any_name, 'MS:1000471', '6140 Quadrupole LC/MS'),
    InstrumentRule(frozenset({'Agilent_TOF_V2'}), _any_name, 'MS:1000472', '6210 Time-of-Flight LC/MS'),
    InstrumentRule(frozenset({'Bruker_Amazon_Ion_Trap'}), _any_name, 'MS:1001545', 'Bruker Daltonics amaZon series'),
    InstrumentRule(frozenset({'Bruker_FTMS', 'BrukerFT_BAF'}), _any_name, 'MS:1001548', 'Bruker Daltonics solarix series'),
    InstrumentRule(frozenset({'Bruker_QTOF'}), _any_name, 'MS:1001535', 'Bruker Daltonics BioTOF series'),
    InstrumentRule(frozenset({'Exactive'}), _any_name, 'MS:1000649', 'Exactive'),
    # TSQ_1 and TSQ_2 are Quantum Ultra; the others are Vantage
    InstrumentRule(_tsq_groups, _name_in('TSQ_1', 'TSQ_2'), 'MS:1000751', 'TSQ Quantum Ultra'),
    InstrumentRule(_tsq_groups, _any_name, 'MS:1001510', 'TSQ Vantage'),
    InstrumentRule(frozenset({'LCQ'}), _any_name, 'MS:1000554', 'LCQ Deca'),
    InstrumentRule(frozenset({'LTQ', 'LTQ-Prep'}), _any_name, 'MS:1000447', 'LTQ'),
    InstrumentRule(frozenset({'LTQ-ETD'}), _any_name, 'MS:1000638', 'LTQ XL ETD'),
    InstrumentRule(frozenset({'LTQ-FT'}), _any_name, 'MS:1000448', 'LTQ FT'),
    InstrumentRule(frozenset({'Lumos'}), _any_name, 'MS:1002732', 'Orbitrap Fusion Lumos'),
    InstrumentRule(frozenset({'Orbitrap'}), _any_name, 'MS:1000449', 'LTQ Orbitrap'),
    InstrumentRule(_qexactive_groups, _name_startswith('QExactHF'), 'MS:1002523', 'Q Exactive HF'),
    InstrumentRule(_qexactive_groups, _name_contains('HFX'), 'MS:1002877', 'Q Exactive HF-X'),
    InstrumentRule(_qexactive_groups, _name_startswith('QExactP'), 'MS:1002634', 'Q Exactive Plus'),
    InstrumentRule(_qexactive_groups, _any_name, 'MS:1001911', 'Q Exactive'),
    InstrumentRule(frozenset({'QTrap'}), _any_name, 'MS:1000931', 'QTRAP 5500'),
    InstrumentRule(frozenset({'Sciex_TripleTOF'}), _any_name, 'MS:1000932', 'TripleTOF 5600'),
    InstrumentRule(frozenset({'VelosOrbi'}), _any_name, 'MS:1001742', 'LTQ Orbitrap Velos'),
    InstrumentRule(frozenset({'VelosPro'}), _any_name, 'MS:1003096', 'LTQ Orbitrap Velos Pro'),
    InstrumentRule(frozenset({'Eclipse'}), _any_name, 'MS:1003029', 'Orbitrap Eclipse'),
    InstrumentRule(_exploris_groups, _name_startswith('Exploris02'), 'MS:1003094', 'Orbitrap Exploris 240'),
    # Exploris01 and Exploris03 are both 480s
    InstrumentRule(_exploris_groups, _any_name, 'MS:1003028', 'Orbitrap Exploris 480'),
    InstrumentRule(frozenset({'Ascend'}), _any_name, 'MS:1003356', 'Orbitrap Ascend'),
]

def resolve(instrument_group, instrument_name, rules=INSTRUMENT_RULES):
    """Return (accession, description) for an instrument, or ('', '') if unmapped.

    :param instrument_group: The DMS instrument group, e.g. 'QExactive'
    :param instrument_name: The DMS instrument name, e.g. 'QExactHF03'
    :param rules: Ordered rule list (default INSTRUMENT_RULES)
    """
    instrument_name = instrument_name or ''
    for rule in rules:
        if instrument_group in rule.groups and rule.name_test(instrument_name):
            return rule.accession, rule.description
    return '', ''

def resolve_or_default(accession, description):
    """Return the instrument CV string, falling back to the unknown mass spec term."""
    if not accession:
        return format_cv('MS', UNKNOWN_INSTRUMENT_ACCESSION, UNKNOWN_INSTRUMENT_NAME, UNKNOWN_INSTRUMENT_VALUE)
    return format_cv('MS', accession, description)

def instrument_cv(instrument_group, instrument_name):
    """Sugar for resolve_or_default(*resolve(instrument_group, instrument_name))."""
    return resolve_or_default(*resolve(instrument_group, instrument_name))
